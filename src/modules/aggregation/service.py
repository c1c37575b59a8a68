"""
Aggregation Service - cross-user dish score projection

Purpose
-------
Recompute each affected dish's average rank, rank count, trend and top-rank
distribution from the current rank store whenever a ranking mutation commits.

Responsibilities
----------------
- Full recompute per (dish, scope) under the dish lock, in its own transaction
- Trend snapshotting (previous_average_rank) for the next comparison
- Listening for ``ranking.changed`` inline (NORMAL) or deferred (LOW)

Non-Responsibilities
--------------------
- Writing rankings or history
- Incremental counters (every recompute reads the rank store)

Consistency
-----------
Recomputes for one dish are serialized by ``rank:dish:{scope}:{dish_id}`` and
each one starts after the mutation that triggered it committed, so the last
recompute always observes every committed ranking for the dish.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Type

from src.core.config.config import AGGREGATION_MODES, Config
from src.core.config.errors import ConfigValidationError
from src.core.database.base import utc_now
from src.core.database.service import DatabaseService
from src.core.event import RANKING_CHANGED, ListenerPriority
from src.core.locking.service import LockService, dish_lock_key
from src.core.logging.logger import LogContext, get_logger
from src.database.models import DishAggregate
from src.modules.aggregation import trend_logic
from src.modules.aggregation.views import AggregateView
from src.modules.ranking.store import RankStore
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.event.bus import EventBus


# ============================================================================
# Repository
# ============================================================================


class AggregateRepository(BaseRepository[DishAggregate]):
    """Repository for DishAggregate rows."""

    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(DishAggregate, logger or get_logger(f"{__name__}.AggregateRepository"))

    async def get(
        self, session: AsyncSession, dish_id: str, scope: str, for_update: bool = False
    ) -> Optional[DishAggregate]:
        return await self.find_one_where(
            session,
            DishAggregate.dish_id == dish_id,
            DishAggregate.scope == scope,
            for_update=for_update,
        )


# ============================================================================
# AggregationService
# ============================================================================


class AggregationService(BaseService):
    """
    Sole writer of ``dish_aggregates``.

    Public Methods
    --------------
    - recompute() -> Rebuild one dish's aggregate
    - recompute_many() -> Rebuild several, isolating failures
    - handle_ranking_changed() -> EventBus listener
    - subscribe() -> Attach the listener in inline or deferred mode
    - drain() -> Await deferred recomputes
    """

    LISTENER_ID = "aggregation.ranking_changed"

    def __init__(
        self,
        config: Type[Config],
        event_bus: EventBus,
        logger: Logger,
        lock_service: LockService,
        store: Optional[RankStore] = None,
        repository: Optional[AggregateRepository] = None,
    ) -> None:
        super().__init__(config, event_bus, logger)
        self.locks = lock_service
        self.store = store or RankStore()
        self.repository = repository or AggregateRepository()
        self.failures = 0
        self.mode: Optional[str] = None

    # ========================================================================
    # Recompute
    # ========================================================================

    async def recompute(self, dish_id: str, scope: str) -> Optional[AggregateView]:
        """
        Rebuild the aggregate of ``dish_id`` in ``scope`` from the rank store.

        Returns None when the dish has never been ranked in the scope (no row
        is created for it). Once a row exists it is kept, with count 0 and a
        cleared trend snapshot, after the last user removes the dish.

        Raises
        ------
        ConcurrentMutationConflictError
            If the dish lock could not be acquired in time.
        """
        epsilon = self.get_config("TREND_EPSILON", 0.01)
        depth = self.get_config("RANK_DISTRIBUTION_DEPTH", 5)

        async with self.locks.acquire(dish_lock_key(scope, dish_id), operation="recompute"):
            async with DatabaseService.get_transaction() as session:
                ranks = await self.store.get_dish_ranks(session, dish_id, scope)
                aggregate = await self.repository.get(session, dish_id, scope, for_update=True)

                if aggregate is None and not ranks:
                    self.log.debug(
                        "Skipping aggregate for unranked dish",
                        extra={"dish_id": dish_id, "scope": scope},
                    )
                    return None

                if aggregate is None:
                    aggregate = self.repository.add(
                        session,
                        DishAggregate(dish_id=dish_id, scope=scope, rank_count=0),
                    )
                    previous_average = None
                else:
                    previous_average = aggregate.previous_average_rank

                new_average = trend_logic.average_rank(ranks)
                trend = trend_logic.derive_trend(previous_average, new_average, epsilon)

                aggregate.average_rank = new_average
                aggregate.rank_count = len(ranks)
                aggregate.trend = trend.value
                # None at count 0 (no average), so a re-entry reports "new"
                aggregate.previous_average_rank = new_average
                aggregate.rank_distribution = trend_logic.compute_distribution(ranks, depth)
                aggregate.recomputed_at = utc_now()

                await self.repository.flush(session)
                view = AggregateView.from_model(aggregate)

        self.log.info(
            "Dish aggregate recomputed",
            extra={
                "dish_id": dish_id,
                "scope": scope,
                "average_rank": view.average_rank,
                "rank_count": view.rank_count,
                "trend": view.trend.value,
                "previous_average_rank": previous_average,
            },
        )
        return view

    async def recompute_many(
        self, dish_ids: Iterable[str], scope: str
    ) -> Dict[str, Optional[AggregateView]]:
        """
        Recompute each distinct dish in sorted order.

        A failure for one dish is logged and counted; the remaining dishes
        are still recomputed. Failed dishes are absent from the result.
        """
        results: Dict[str, Optional[AggregateView]] = {}
        for dish_id in sorted(set(dish_ids)):
            try:
                results[dish_id] = await self.recompute(dish_id, scope)
            except Exception as exc:
                self.failures += 1
                self.log_error("recompute", exc, dish_id=dish_id, scope=scope)
        return results

    # ========================================================================
    # Event wiring
    # ========================================================================

    async def handle_ranking_changed(self, payload: Dict[str, Any]) -> None:
        scope = payload["scope"]
        dish_ids: List[str] = list(payload.get("dish_ids") or [])
        if not dish_ids:
            return

        async with LogContext(
            user_id=payload.get("user_id"), scope=scope, component="aggregation"
        ):
            await self.recompute_many(dish_ids, scope)

    def subscribe(self, mode: Optional[str] = None) -> str:
        """
        Attach ``handle_ranking_changed`` to the event bus.

        ``inline`` awaits recomputes before the mutation call returns;
        ``deferred`` runs them as background tasks.

        Raises
        ------
        ConfigValidationError
            If mode is not one of AGGREGATION_MODES.
        """
        mode = mode or self.get_config("AGGREGATION_MODE", "inline")
        if mode not in AGGREGATION_MODES:
            raise ConfigValidationError(
                f"AGGREGATION_MODE must be one of {AGGREGATION_MODES}, got {mode!r}"
            )

        priority = ListenerPriority.NORMAL if mode == "inline" else ListenerPriority.LOW
        listener_id = self._events.subscribe(
            RANKING_CHANGED,
            self.handle_ranking_changed,
            priority=priority,
            identifier=self.LISTENER_ID,
        )
        self.mode = mode

        self.log.info(
            "Aggregation subscribed to ranking changes",
            extra={"mode": mode, "priority": priority.name},
        )
        return listener_id

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Await deferred recomputes still running in the background."""
        return await self._events.drain(timeout=timeout)
