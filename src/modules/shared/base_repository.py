"""
Generic data access over SQLAlchemy 2.0 async sessions.

RankStore, HistoryLedger and AggregateRepository subclass it. Repositories
never commit and never open sessions: the caller passes the session of the
transaction it owns.

    class RankStore(BaseRepository[Ranking]):
        async def get_user_rankings(self, session, user_id, scope):
            return await self.find_many_where(
                session,
                Ranking.user_id == user_id,
                Ranking.scope == scope,
                order_by=[Ranking.rank.asc()],
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Typed lookups and unit-of-work helpers for one mapped model ``T``."""

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def model_name(self) -> str:
        return self.model_class.__name__

    def _select(
        self,
        conditions: Sequence[ColumnElement[bool]],
        order_by: Optional[Sequence[Any]] = None,
        for_update: bool = False,
        limit: Optional[int] = None,
    ) -> Select[Any]:
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        """The single matching row or None; ``for_update`` locks it."""
        result = await session.execute(self._select(conditions, for_update=for_update))
        return result.scalar_one_or_none()

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        for_update: bool = False,
        limit: Optional[int] = None,
    ) -> List[T]:
        result = await session.execute(
            self._select(conditions, order_by, for_update, limit)
        )
        rows = list(result.scalars().all())
        self.log.debug(
            f"Loaded {len(rows)} {self.model_name} rows",
            extra={"model": self.model_name, "locked": for_update, "limit": limit},
        )
        return rows

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        return instance

    def add_many(self, session: AsyncSession, instances: Sequence[T]) -> List[T]:
        session.add_all(instances)
        return list(instances)

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
