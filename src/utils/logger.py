"""
Logger Utility
==============

Context-tagged logging for the agent. Every component creates its own
logger with a short context name, so a single run can be traced through
the model transport, the permission gate and the tool executor:

    [2025-01-31T10:30:00] [INFO] [Agent] Iteration 2: 1 structured call(s)
    [2025-01-31T10:30:01] [WARN] [Harbor:Gate] Permission prompt timed out

Output goes to stderr. The interactive chat prints answers on stdout and
the two streams must not interleave.

Usage:
    from src.utils.logger import Logger

    logger = Logger("Harbor")
    gate_logger = logger.child("Gate")
    gate_logger.debug("Prompting user", {"tool": "click_element"})
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Numeric levels; a message is shown when its level >= the minimum."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for coloured terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


_LEVELS = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARNING": LogLevel.WARNING,
    "WARN": LogLevel.WARNING,
    "ERROR": LogLevel.ERROR,
}


def _get_log_level_from_env() -> LogLevel:
    """Read LOG_LEVEL, defaulting to INFO for unknown values."""
    return _LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), LogLevel.INFO)


def _use_color() -> bool:
    if os.getenv("NO_COLOR"):
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


class Logger:
    """
    A context-aware logger.

    Example:
        logger = Logger("ToolExecutor")
        logger.info("Executing tool: read_page")
        logger.error("Tool crashed", exc)
    """

    def __init__(self, context: str = ""):
        self.context = context
        self._min_level = _get_log_level_from_env()

    def child(self, child_context: str) -> "Logger":
        """
        Create a child logger, e.g. Logger("Harbor").child("Gate") logs
        with the prefix [Harbor:Gate].
        """
        new_context = f"{self.context}:{child_context}" if self.context else child_context
        return Logger(new_context)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self._min_level

    def _format_message(self, level_name: str, message: str, color: str) -> str:
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        if not _use_color():
            return f"[{timestamp}] [{level_name}] {context_str}{message}"

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level_name}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if not self.is_enabled_for(level):
            return

        print(self._format_message(level_name, message, color), file=sys.stderr)

        if data:
            # Tool arguments can hold anything the model produced
            data_str = json.dumps(data, indent=2, default=str)
            if _use_color():
                data_str = f"{Colors.DIM}{data_str}{Colors.RESET}"
            print(data_str, file=sys.stderr)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Detailed tracing; only shown when LOG_LEVEL=DEBUG."""
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """General operational information."""
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Something unexpected that the agent recovered from."""
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(self, message: str, error: BaseException | None = None) -> None:
        """
        Log an error, optionally with the exception that caused it.

        Args:
            message: What failed
            error: The exception, whose type and message are attached
        """
        data = None
        if error is not None:
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)


# Default logger for quick use in scripts and the CLI
logger = Logger("FoxAgent")
