"""
ListenerRegistry: EventBus listeners per exact event name, kept sorted by
(priority, identifier) so execution order is deterministic.
"""

from __future__ import annotations

from src.core.event.types import EventListener


class ListenerRegistry:
    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}

    def add_listener(self, event_name: str, listener: EventListener) -> bool:
        """False when ``listener.identifier`` is already registered for the event."""
        listeners = self._listeners.setdefault(event_name, [])
        if any(lst.identifier == listener.identifier for lst in listeners):
            return False
        listeners.append(listener)
        listeners.sort(key=lambda lst: (lst.priority.value, lst.identifier))
        return True

    def _replace(self, event_name: str, listeners: list[EventListener]) -> None:
        if listeners:
            self._listeners[event_name] = listeners
        else:
            self._listeners.pop(event_name, None)

    def remove_listener(self, event_name: str, identifier: str) -> bool:
        listeners = self._listeners.get(event_name, [])
        kept = [lst for lst in listeners if lst.identifier != identifier]
        self._replace(event_name, kept)
        return len(kept) < len(listeners)

    def extract_listeners_for_event(self, event_name: str) -> list[EventListener]:
        """
        Listeners for ``event_name``, with one-shot listeners pruned in the
        same step so two concurrent publishes cannot both run one.
        """
        listeners = list(self._listeners.get(event_name, []))
        self._replace(event_name, [lst for lst in listeners if not lst.once])
        return listeners

    def get_listener_count_for_event(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))

    def get_total_listener_count(self) -> int:
        return sum(len(lst) for lst in self._listeners.values())
