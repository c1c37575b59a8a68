"""Per-user dense rank lists: store, shift planning and the mutation engine."""

from .service import RankingService
from .shift_logic import RankChange, ShiftPlan, is_dense, plan_insert, plan_move, plan_remove
from .store import RankStore
from .views import MutationResult, RankingView

__all__ = [
    "RankingService",
    "RankStore",
    "RankingView",
    "MutationResult",
    "RankChange",
    "ShiftPlan",
    "is_dense",
    "plan_insert",
    "plan_move",
    "plan_remove",
]
