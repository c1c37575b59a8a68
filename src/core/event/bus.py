"""
EventBus: async pub/sub with tiered concurrency.

The mutation engine publishes ``ranking.changed`` after commit. Aggregation
listens at NORMAL priority (inline: awaited before ``publish`` returns) or
LOW (deferred: a background task, awaited by ``drain()``). A failing
listener is logged and never fails the publisher. Meant for one event loop;
registry changes happen between awaits.

>>> bus = EventBus()
>>> bus.subscribe("ranking.changed", on_changed, priority=ListenerPriority.LOW)
>>> await bus.publish("ranking.changed", {"scope": "all", "dish_ids": ["d-1"]})
>>> await bus.drain()
"""

from __future__ import annotations

import inspect
from typing import Any, Optional

from src.core.event.registry import ListenerRegistry
from src.core.event.scheduler import EventScheduler
from src.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


def _takes_one_argument(callback: CallbackType) -> bool:
    try:
        parameters = inspect.signature(callback).parameters
    except (TypeError, ValueError):
        # No introspectable signature (some builtins)
        return True
    return len(parameters) == 1


class EventBus:
    def __init__(
        self,
        *,
        critical_timeout_seconds: float = 5.0,
        high_timeout_seconds: float = 5.0,
    ) -> None:
        self._registry = ListenerRegistry()
        self._scheduler = EventScheduler()
        self._critical_timeout = float(critical_timeout_seconds)
        self._high_timeout = float(high_timeout_seconds)
        self._published: dict[str, int] = {}

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Register ``callback(payload)`` and return its identifier.

        A second subscription under an identifier already registered for
        ``event_name`` is ignored.

        Raises
        ------
        ValueError
            The callback does not take exactly one argument.
        """
        if not _takes_one_argument(callback):
            raise ValueError(
                f"Event listener {getattr(callback, '__qualname__', callback)!r} "
                "must accept exactly one argument (the payload)"
            )

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )
        if self._registry.add_listener(event_name, listener):
            logger.debug(
                "Listener subscribed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": priority.name,
                },
            )
        else:
            logger.warning(
                "Duplicate listener ignored",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        return self._registry.remove_listener(event_name, identifier)

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Deliver ``data`` to every listener of ``event_name``.

        Returns the results of the awaited tiers (CRITICAL, HIGH, NORMAL);
        LOW listeners are only scheduled.
        """
        self._published[event_name] = self._published.get(event_name, 0) + 1

        listeners = self._registry.extract_listeners_for_event(event_name)
        if not listeners:
            return []

        logger.debug(
            "Publishing event",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )
        return await self._scheduler.execute(
            event_name=event_name,
            payload=data,
            listeners=listeners,
            logger=logger,
            critical_timeout=self._critical_timeout,
            high_timeout=self._high_timeout,
        )

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Await outstanding LOW-priority listeners. Returns how many ran."""
        return await self._scheduler.drain(timeout=timeout)

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name:
            return self._registry.get_listener_count_for_event(event_name)
        return self._registry.get_total_listener_count()

    def get_background_task_count(self) -> int:
        return self._scheduler.get_background_task_count()

    def get_publish_counts(self) -> dict[str, int]:
        return dict(self._published)
