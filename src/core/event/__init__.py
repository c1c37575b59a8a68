"""
Event system for the ranking core.

A tiered async EventBus used to hand committed ranking changes to the
aggregation engine.
"""

from .bus import EventBus
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

RANKING_CHANGED = "ranking.changed"

__all__ = [
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
    "RANKING_CHANGED",
]
