"""Read-side snapshot of a dish aggregate."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from src.database.models import DishAggregate, Trend


@dataclass(frozen=True)
class AggregateView:
    dish_id: str
    scope: str
    average_rank: Optional[float]
    rank_count: int
    trend: Trend
    previous_average_rank: Optional[float] = None
    rank_distribution: Dict[str, int] = field(default_factory=dict)
    recomputed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, aggregate: DishAggregate) -> AggregateView:
        return cls(
            dish_id=aggregate.dish_id,
            scope=aggregate.scope,
            average_rank=aggregate.average_rank,
            rank_count=aggregate.rank_count,
            trend=Trend(aggregate.trend),
            previous_average_rank=aggregate.previous_average_rank,
            rank_distribution=dict(aggregate.rank_distribution or {}),
            recomputed_at=aggregate.recomputed_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dish_id": self.dish_id,
            "scope": self.scope,
            "average_rank": self.average_rank,
            "rank_count": self.rank_count,
            "trend": self.trend.value,
            "rank_distribution": dict(self.rank_distribution),
            "recomputed_at": self.recomputed_at.isoformat() if self.recomputed_at else None,
        }
