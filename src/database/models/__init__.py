"""
Database Models Package
========================

SQLAlchemy ORM models for the ranking core.

All models:
- Are schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from the shared mixins (IdMixin, TimestampMixin) where they apply

Tables:
-------
- dish_rankings: per-user dense rank lists (written by RankingService)
- rank_history: append-only transition ledger (written by HistoryLedger)
- dish_aggregates: per-dish projections (written by AggregationService)
"""

from src.core.database.base import Base

from .enums import RankEvent, Trend
from .ranking import DishAggregate, RankHistoryEntry, Ranking

__all__ = [
    "Base",
    "Ranking",
    "RankHistoryEntry",
    "DishAggregate",
    "RankEvent",
    "Trend",
]
