"""
Structured logging module.

Provides JSON logging with context propagation.
"""

from core.logging.context import (
    clear_log_context,
    get_current_trace_ids,
    get_log_context,
    set_log_context,
)
from core.logging.context_managers import LogContext
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import get_logger, setup_logging

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "get_current_trace_ids",
    # Context Managers
    "LogContext",
]
