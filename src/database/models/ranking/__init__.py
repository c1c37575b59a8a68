"""Ranking domain models."""

from .aggregate import DishAggregate
from .history import RankHistoryEntry
from .ranking import Ranking

__all__ = ["Ranking", "RankHistoryEntry", "DishAggregate"]
