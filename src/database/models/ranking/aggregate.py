"""
DishAggregate: cross-user projection of one dish's rankings in one scope.
Derived data; written only by AggregationService.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import JSON, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, TimestampMixin, UTCDateTime, utc_now
from ..enums import Trend


class DishAggregate(Base, TimestampMixin):
    """
    Average rank, rank count, trend and rank distribution for a dish.

    Retained with rank_count = 0 after the last user removes the dish, with
    the trend snapshot cleared so a later re-entry reports ``new``.
    """

    __tablename__ = "dish_aggregates"
    __table_args__ = (
        Index("ix_dish_aggregates_scope_average", "scope", "average_rank"),
    )

    dish_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    scope: Mapped[str] = mapped_column(String(64), primary_key=True)

    average_rank: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rank_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trend: Mapped[str] = mapped_column(String(8), nullable=False, default=Trend.NONE.value)
    previous_average_rank: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # {"1": n, ..., "5": n}: users ranking the dish at each top position
    rank_distribution: Mapped[Dict[str, int]] = mapped_column(
        JSON, nullable=False, default=dict
    )

    recomputed_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
    )

    def __repr__(self) -> str:
        return (
            f"<DishAggregate dish={self.dish_id!r} scope={self.scope!r} "
            f"avg={self.average_rank} count={self.rank_count} trend={self.trend}>"
        )
