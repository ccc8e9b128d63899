"""
Utilities Module
================

Common utilities shared across the agent:
- logger: Context-tagged logging to stderr
- config: Centralized, environment-driven configuration
"""

from src.utils.logger import Logger, logger
from src.utils.config import get_config, Config

__all__ = ["Logger", "logger", "get_config", "Config"]
