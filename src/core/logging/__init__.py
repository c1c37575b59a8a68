"""Structured logging: queue pipeline, JSON/console formatters, LogContext."""

from src.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "LogContext",
    "ContextFilter",
    "JSONFormatter",
]
