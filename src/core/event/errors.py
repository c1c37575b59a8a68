"""Listener failure handling for the EventBus."""

from __future__ import annotations

from logging import Logger

from src.core.event.types import EventListener


def handle_listener_error(
    *,
    logger: Logger,
    event_name: str,
    listener: EventListener,
    exc: BaseException,
) -> None:
    """Log a listener failure. Never raises; the publisher carries on."""
    logger.error(
        "EventBus listener failed",
        extra={
            "event_name": event_name,
            "listener_id": listener.identifier,
            "priority": listener.priority.name,
            "error_type": type(exc).__name__,
        },
        exc_info=(type(exc), exc, exc.__traceback__),
    )
