"""Cross-user dish aggregates: average rank, count, trend and distribution."""

from .service import AggregateRepository, AggregationService
from .trend_logic import average_rank, compute_distribution, derive_trend
from .views import AggregateView

__all__ = [
    "AggregationService",
    "AggregateRepository",
    "AggregateView",
    "average_rank",
    "compute_distribution",
    "derive_trend",
]
