"""
Structured logging for the ranking core.

Records are enriched on the calling task with the ambient ``LogContext``
(user, scope, dish, operation, correlation id), queued, and written by a
background listener so handlers never block the event loop.

Output
------
- console: JSON in production (or LOG_JSON=true), colored text on a TTY,
  plain text otherwise
- ``LOGS_DIR/ranking.json.log``: JSON, rotated at midnight UTC
  (LOG_FILE_ENABLED=false disables it)

Fields passed with ``logger.info("msg", extra={...})`` land under ``extra``
in the JSON form.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.core.config.config import Config

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "ranking.json.log"
QUEUE_MAX_SIZE = 10_000

CONTEXT_FIELDS = ("user_id", "scope", "dish_id", "operation", "component", "correlation_id")

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})
_listener: Optional[QueueListener] = None
_queue_handler: Optional[QueueHandler] = None


def _level() -> int:
    return getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO)


def _use_json() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return bool(Config.LOG_JSON)


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the ambient LogContext onto each record, unless ``extra`` set it."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, context.get(field))
        if record.component is None:
            record.component = record.name.split(".", 1)[0]
        return True


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    # Attributes every LogRecord carries; anything else came from ``extra``
    RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in self.RESERVED and key not in CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, ensure_ascii=False, default=str)


# ============================================================================
# Setup / Teardown
# ============================================================================


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if _use_json():
        handler.setFormatter(JSONFormatter())
    elif sys.stdout.isatty():
        handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, DATE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    return handler


def _file_handler() -> logging.Handler:
    logs_dir = Path(Config.LOGS_DIR)
    logs_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(logs_dir / LOG_FILE_NAME),
        when="midnight",
        backupCount=1,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Install the queue pipeline on the root logger. Idempotent."""
    global _listener, _queue_handler

    if _queue_handler is not None:
        return

    handlers: List[logging.Handler] = [_console_handler()]
    if Config.LOG_FILE_ENABLED:
        handlers.append(_file_handler())

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(QUEUE_MAX_SIZE)
    _listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    _listener.start()

    # Context is captured on the calling task, before the record is queued
    _queue_handler = QueueHandler(log_queue)
    _queue_handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.setLevel(_level())
    root.addHandler(_queue_handler)

    for noisy in ("asyncio", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging initialized",
        extra={"json": _use_json(), "file_enabled": Config.LOG_FILE_ENABLED},
    )


def shutdown_logging() -> None:
    """Flush queued records and detach the pipeline."""
    global _listener, _queue_handler

    if _listener is not None:
        _listener.stop()
        _listener = None
    if _queue_handler is not None:
        logging.getLogger().removeHandler(_queue_handler)
        _queue_handler.close()
        _queue_handler = None


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


# ============================================================================
# Context
# ============================================================================


class LogContext:
    """
    Bind context fields to every record logged inside the block, across awaits.

    Nested contexts inherit the outer fields and correlation id.

    >>> async with LogContext(user_id="u-1", scope="all", operation="upsert_rank"):
    ...     logger.info("Ranking mutated")
    """

    def __init__(self, correlation_id: Optional[str] = None, **fields: Any) -> None:
        inherited = _log_context.get()
        self.context: Dict[str, Any] = {
            **inherited,
            **{key: value for key, value in fields.items() if value is not None},
        }
        self.context["correlation_id"] = (
            correlation_id or inherited.get("correlation_id") or uuid.uuid4().hex[:8]
        )
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


setup_logging()
