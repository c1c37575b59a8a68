"""
RankStore: read access to ``dish_rankings``.

All methods take the caller's session; the store never opens transactions
and never writes. ``lock_user_rankings`` is reserved for RankingService,
which calls it inside its transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import select

from src.core.logging.logger import get_logger
from src.database.models import Ranking
from src.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession


class RankStore(BaseRepository[Ranking]):
    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(Ranking, logger or get_logger(__name__))

    async def get_user_rankings(
        self, session: AsyncSession, user_id: str, scope: str
    ) -> List[Ranking]:
        """The user's list in ``scope`` ordered by rank ascending."""
        return await self.find_many_where(
            session,
            Ranking.user_id == user_id,
            Ranking.scope == scope,
            order_by=[Ranking.rank.asc()],
        )

    async def lock_user_rankings(
        self, session: AsyncSession, user_id: str, scope: str
    ) -> List[Ranking]:
        """Same as get_user_rankings, with SELECT ... FOR UPDATE."""
        return await self.find_many_where(
            session,
            Ranking.user_id == user_id,
            Ranking.scope == scope,
            order_by=[Ranking.rank.asc()],
            for_update=True,
        )

    async def get_ranking(
        self, session: AsyncSession, user_id: str, scope: str, dish_id: str
    ) -> Optional[Ranking]:
        return await self.find_one_where(
            session,
            Ranking.user_id == user_id,
            Ranking.scope == scope,
            Ranking.dish_id == dish_id,
        )

    async def get_dish_ranks(
        self, session: AsyncSession, dish_id: str, scope: str
    ) -> List[int]:
        """Every user's current rank for one dish in ``scope``."""
        result = await session.execute(
            select(Ranking.rank).where(
                Ranking.dish_id == dish_id,
                Ranking.scope == scope,
            )
        )
        ranks = [int(rank) for rank in result.scalars().all()]

        self.log.debug(
            "RankStore.get_dish_ranks",
            extra={"dish_id": dish_id, "scope": scope, "rank_count": len(ranks)},
        )
        return ranks
