"""
Database Model Enums
====================

Lightweight enumerations for ranking models. Stored as plain strings in
the schema; services compare against these values.
"""

from __future__ import annotations

import enum


class Trend(str, enum.Enum):
    """
    Direction of a dish's average rank since the previous recompute.

    Lower average rank is better, so ``up`` means the average decreased.
    """

    UP = "up"
    DOWN = "down"
    NEW = "new"
    NONE = "none"


class RankEvent(str, enum.Enum):
    """Kind of transition recorded in the rank history ledger."""

    ENTERED = "entered"  # dish added to the list
    MOVED = "moved"  # dish explicitly moved by the user
    SHIFTED = "shifted"  # dish displaced by another dish's insert/move/removal
    NOTE_UPDATED = "note_updated"  # same rank, note or photos changed
    REMOVED = "removed"  # dish removed from the list
