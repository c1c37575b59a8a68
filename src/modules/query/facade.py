"""
Ranking Query Service - read-only composition for UI and search

Purpose
-------
Serve a user's list, dish aggregates, trends, the top-dish listing used by
the search collaborator, and "previously ranked" history, without ever
taking a lock or waiting on aggregation.

All reads use ``DatabaseService.get_session()`` and return immutable views.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Type

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.database.models import DishAggregate, Trend
from src.modules.aggregation.service import AggregateRepository
from src.modules.aggregation.views import AggregateView
from src.modules.history.ledger import HistoryEntryView, HistoryLedger
from src.modules.ranking.store import RankStore
from src.modules.ranking.views import RankingView
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import ValidationError
from src.modules.shared.validators import validate_identifier, validate_scope

if TYPE_CHECKING:
    from logging import Logger

    from src.core.event.bus import EventBus


class RankingQueryService(BaseService):
    def __init__(
        self,
        config: Type[Config],
        event_bus: EventBus,
        logger: Logger,
        store: Optional[RankStore] = None,
        ledger: Optional[HistoryLedger] = None,
        aggregates: Optional[AggregateRepository] = None,
    ) -> None:
        super().__init__(config, event_bus, logger)
        self.store = store or RankStore()
        self.ledger = ledger or HistoryLedger()
        self.aggregates = aggregates or AggregateRepository()

    def _scope(self, scope: str) -> str:
        return validate_scope(scope, self.get_config("RANKING_SCOPES", ["all"]))

    async def list_user_rankings(self, user_id: str, scope: str) -> List[RankingView]:
        """The user's list in ``scope``, ordered by rank ascending."""
        user_id = validate_identifier("user_id", user_id)
        scope = self._scope(scope)

        async with DatabaseService.get_session() as session:
            rows = await self.store.get_user_rankings(session, user_id, scope)
            return [RankingView.from_model(row) for row in rows]

    async def get_dish_aggregate(self, dish_id: str, scope: str) -> Optional[AggregateView]:
        dish_id = validate_identifier("dish_id", dish_id)
        scope = self._scope(scope)

        async with DatabaseService.get_session() as session:
            aggregate = await self.aggregates.get(session, dish_id, scope)
            return AggregateView.from_model(aggregate) if aggregate else None

    async def get_trend(self, dish_id: str, scope: str) -> Trend:
        """``none`` when the dish has no aggregate yet."""
        view = await self.get_dish_aggregate(dish_id, scope)
        return view.trend if view else Trend.NONE

    async def list_top_dishes(
        self, scope: str, limit: int = 20, min_rank_count: int = 1
    ) -> List[AggregateView]:
        """
        Dishes by ascending average rank, then descending rank count, then id.

        Dishes with fewer than ``min_rank_count`` rankings (including retained
        aggregates with count 0) are excluded.

        Raises:
            ValidationError: If limit or min_rank_count is not a positive integer
        """
        scope = self._scope(scope)
        max_limit = self.get_config("TOP_DISHES_MAX_LIMIT", 100)

        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit", "limit must be a positive integer")
        if isinstance(min_rank_count, bool) or not isinstance(min_rank_count, int) or min_rank_count < 1:
            raise ValidationError("min_rank_count", "min_rank_count must be a positive integer")
        limit = min(limit, max_limit)

        async with DatabaseService.get_session() as session:
            rows = await self.aggregates.find_many_where(
                session,
                DishAggregate.scope == scope,
                DishAggregate.rank_count >= min_rank_count,
                DishAggregate.average_rank.is_not(None),
                order_by=[
                    DishAggregate.average_rank.asc(),
                    DishAggregate.rank_count.desc(),
                    DishAggregate.dish_id.asc(),
                ],
                limit=limit,
            )
            return [AggregateView.from_model(row) for row in rows]

    async def get_dish_history(
        self, user_id: str, scope: str, dish_id: str, limit: Optional[int] = None
    ) -> List[HistoryEntryView]:
        """Newest-first history of one dish in the user's list."""
        user_id = validate_identifier("user_id", user_id)
        scope = self._scope(scope)
        dish_id = validate_identifier("dish_id", dish_id)

        return await self.ledger.get_history(user_id, scope, dish_id).to_list(limit)

    async def get_previous_rank(self, user_id: str, scope: str, dish_id: str) -> Optional[int]:
        user_id = validate_identifier("user_id", user_id)
        scope = self._scope(scope)
        dish_id = validate_identifier("dish_id", dish_id)
        return await self.ledger.get_previous_rank(user_id, scope, dish_id)
