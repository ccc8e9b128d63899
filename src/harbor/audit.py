"""
Action Log
==========

Audit trail of every tool call the agent attempted: what ran, where,
under which decision, and how it ended.

Entries are immutable. The in-memory log keeps the newest entries up to
a cap (oldest evicted) for display; sinks receive every entry, e.g. a
JSONL file for a durable trail.

Logging is fire-and-forget: a failing sink is reported through the
application logger and never reaches the agent loop.
"""

import asyncio
import json
import time
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from src.utils.logger import Logger

logger = Logger("Harbor").child("Audit")

AUTO_APPROVED = "auto-approved"


class Outcome(str, Enum):
    SUCCESS = "success"
    DENIED = "denied"
    ERROR = "error"


@dataclass(frozen=True)
class ActionLogEntry:
    """
    One audited tool call.

    Attributes:
        tool: Tool name as requested by the model
        args: Arguments the tool was (or would have been) called with
        site: Hostname of the active tab
        tier: Permission tier of the tool (None for unknown tools)
        decision: "auto-approved", a user decision ("allow-once", ...) or "deny"
        outcome: success, denied or error
        details: Error text or other short note
    """
    tool: str
    args: dict[str, Any]
    site: str
    tier: str | None
    decision: str
    outcome: Outcome
    details: str | None = None
    id: str = field(default_factory=lambda: f"act_{uuid.uuid4().hex[:12]}")
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data


class ActionSink(Protocol):
    """Receives every audited entry."""

    def write(self, entry: ActionLogEntry) -> None:
        ...


class JSONLActionSink:
    """
    Appends one JSON record per line to a file.

    Inside a running event loop the append happens on a single writer
    thread, so the loop never waits on the disk and lines keep their order.
    Call close() before exit to flush pending lines.
    """

    def __init__(self, out_path: Path):
        self.out_path = Path(out_path).expanduser()
        self.out_path.parent.mkdir(parents=True, exist_ok=True)
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit-jsonl")

    def write(self, entry: ActionLogEntry) -> None:
        line = json.dumps(entry.to_dict(), ensure_ascii=False, default=str) + "\n"
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.append_line(line)
            return

        pending = self._writer.submit(self.append_line, line)
        pending.add_done_callback(self._report_failure)

    def close(self) -> None:
        self._writer.shutdown(wait=True)

    def append_line(self, line: str) -> None:
        with self.out_path.open("a", encoding="utf-8") as f:
            f.write(line)

    def _report_failure(self, pending: Future) -> None:
        error = pending.exception()
        if error is not None:
            logger.error(f"Could not append to {self.out_path}", error)


class ActionLog:
    """
    Bounded in-memory audit log with pluggable sinks.

    Example:
        log = ActionLog(cap=100, sinks=[JSONLActionSink(Path("actions.jsonl"))])
        log.log_action(entry)
        recent = log.entries(limit=10)  # newest first
    """

    def __init__(self, cap: int = 100, sinks: list[ActionSink] | None = None):
        self.cap = max(cap, 1)
        self._entries: deque[ActionLogEntry] = deque(maxlen=self.cap)
        self._sinks: list[ActionSink] = list(sinks or [])

    def add_sink(self, sink: ActionSink) -> None:
        self._sinks.append(sink)

    def log_action(self, entry: ActionLogEntry) -> None:
        """Record an entry. Never raises."""
        self._entries.append(entry)
        logger.debug(
            f"{entry.tool} on {entry.site}: {entry.decision} -> {entry.outcome.value}"
        )

        for sink in self._sinks:
            try:
                sink.write(entry)
            except Exception as e:
                logger.error(f"Audit sink {type(sink).__name__} failed", e)

    def entries(self, limit: int | None = None) -> list[ActionLogEntry]:
        """Recorded entries, newest first."""
        newest_first = list(reversed(self._entries))
        return newest_first if limit is None else newest_first[:limit]

    def close(self) -> None:
        """Close sinks that hold resources (open writers)."""
        for sink in self._sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
