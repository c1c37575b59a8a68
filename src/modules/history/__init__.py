"""Append-only rank history ledger."""

from .ledger import (
    REMOVED,
    ActiveRank,
    HistoryEntryView,
    HistoryIterator,
    HistoryLedger,
    HistoryRecord,
    RankState,
    Removed,
    replay,
)

__all__ = [
    "HistoryLedger",
    "HistoryIterator",
    "HistoryRecord",
    "HistoryEntryView",
    "RankState",
    "ActiveRank",
    "Removed",
    "REMOVED",
    "replay",
]
