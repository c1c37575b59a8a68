"""
History Ledger - append-only rank transition log

Purpose
-------
Record every rank change of every dish in every user's list, in the same
transaction as the change itself, and serve that history back for
"previously ranked #K" displays, audits and replay.

Responsibilities
----------------
- Append entries inside the mutation engine's transaction (never commits)
- Paginated, restartable newest-first history per (user, scope, dish)
- Full ascending ledger per (user, scope)
- Pure replay of a ledger into the rank mapping it describes

Non-Responsibilities
--------------------
- Deciding which entries to write (RankingService)
- Updating or deleting entries (never happens)

Representation
--------------
The resulting position of an entry is a tagged variant: ``ActiveRank(rank)``
while the dish is in the list, ``Removed`` once it left. In storage this is
``rank`` NULL with ``event = 'removed'``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Union,
)

from sqlalchemy import and_, or_

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.database.models import RankEvent, RankHistoryEntry
from src.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession


# ============================================================================
# Rank state variant
# ============================================================================


@dataclass(frozen=True)
class ActiveRank:
    rank: int


@dataclass(frozen=True)
class Removed:
    pass


REMOVED = Removed()

RankState = Union[ActiveRank, Removed]


def state_from_rank(rank: Optional[int]) -> RankState:
    return REMOVED if rank is None else ActiveRank(rank)


def rank_from_state(state: RankState) -> Optional[int]:
    return state.rank if isinstance(state, ActiveRank) else None


# ============================================================================
# Entry types
# ============================================================================


@dataclass(frozen=True)
class HistoryRecord:
    """An entry about to be appended (no id or timestamp yet)."""

    user_id: str
    scope: str
    dish_id: str
    event: RankEvent
    state: RankState
    previous_rank: Optional[int]
    note: Optional[str] = None

    def __post_init__(self) -> None:
        removed = isinstance(self.state, Removed)
        if removed != (self.event is RankEvent.REMOVED):
            raise ValueError("Removed state is reserved for 'removed' entries")
        if (self.previous_rank is None) != (self.event is RankEvent.ENTERED):
            raise ValueError("previous_rank is null exactly for 'entered' entries")

    def to_model(self) -> RankHistoryEntry:
        return RankHistoryEntry(
            user_id=self.user_id,
            scope=self.scope,
            dish_id=self.dish_id,
            event=self.event.value,
            rank=rank_from_state(self.state),
            previous_rank=self.previous_rank,
            note=self.note,
        )


@dataclass(frozen=True)
class HistoryEntryView:
    """A stored entry."""

    id: int
    user_id: str
    scope: str
    dish_id: str
    event: RankEvent
    state: RankState
    previous_rank: Optional[int]
    note: Optional[str]
    recorded_at: datetime

    @property
    def rank(self) -> Optional[int]:
        return rank_from_state(self.state)

    @classmethod
    def from_model(cls, entry: RankHistoryEntry) -> HistoryEntryView:
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            scope=entry.scope,
            dish_id=entry.dish_id,
            event=RankEvent(entry.event),
            state=state_from_rank(entry.rank),
            previous_rank=entry.previous_rank,
            note=entry.note,
            recorded_at=entry.recorded_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "dish_id": self.dish_id,
            "event": self.event.value,
            "rank": self.rank,
            "removed": isinstance(self.state, Removed),
            "previous_rank": self.previous_rank,
            "note": self.note,
            "recorded_at": self.recorded_at.isoformat(),
        }


# ============================================================================
# Replay
# ============================================================================


def replay(entries: Iterable[Union[HistoryRecord, HistoryEntryView]]) -> Dict[str, int]:
    """
    Fold entries (in append order) into the ``dish_id -> rank`` mapping they
    describe. Replaying a user's full ledger for a scope reproduces the
    current rank store contents.
    """
    ranks: Dict[str, int] = {}
    for entry in entries:
        if isinstance(entry.state, ActiveRank):
            ranks[entry.dish_id] = entry.state.rank
        else:
            ranks.pop(entry.dish_id, None)
    return ranks


# ============================================================================
# Lazy paginated history
# ============================================================================


class HistoryIterator:
    """
    Newest-first history of one dish in one user's list.

    Pages of ``page_size`` rows are fetched lazily with keyset pagination on
    (recorded_at, id). Each ``async for`` starts again from the newest entry.
    """

    def __init__(
        self,
        ledger: HistoryLedger,
        user_id: str,
        scope: str,
        dish_id: str,
        page_size: int,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._ledger = ledger
        self.user_id = user_id
        self.scope = scope
        self.dish_id = dish_id
        self.page_size = page_size

    def __aiter__(self) -> AsyncIterator[HistoryEntryView]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[HistoryEntryView]:
        cursor: Optional[tuple[datetime, int]] = None
        while True:
            page = await self._ledger._fetch_page(
                self.user_id, self.scope, self.dish_id, self.page_size, cursor
            )
            for entry in page:
                yield entry
            if len(page) < self.page_size:
                return
            last = page[-1]
            cursor = (last.recorded_at, last.id)

    async def first(self) -> Optional[HistoryEntryView]:
        async for entry in self:
            return entry
        return None

    async def to_list(self, limit: Optional[int] = None) -> List[HistoryEntryView]:
        entries: List[HistoryEntryView] = []
        async for entry in self:
            if limit is not None and len(entries) >= limit:
                break
            entries.append(entry)
        return entries


# ============================================================================
# Ledger
# ============================================================================


class HistoryLedger(BaseRepository[RankHistoryEntry]):
    """Sole writer of ``rank_history``."""

    def __init__(self, logger: Optional[Logger] = None) -> None:
        super().__init__(RankHistoryEntry, logger or get_logger(__name__))

    async def append(
        self, session: AsyncSession, records: Sequence[HistoryRecord]
    ) -> List[HistoryEntryView]:
        """
        Append entries within the caller's transaction.

        Flushes so ids and timestamps are assigned; the caller's commit or
        rollback decides whether they persist.
        """
        if not records:
            return []

        models = self.add_many(session, [record.to_model() for record in records])
        await self.flush(session)

        self.log.debug(
            "History entries appended",
            extra={
                "entry_count": len(models),
                "events": [record.event.value for record in records],
            },
        )
        return [HistoryEntryView.from_model(model) for model in models]

    def get_history(
        self,
        user_id: str,
        scope: str,
        dish_id: str,
        *,
        page_size: Optional[int] = None,
    ) -> HistoryIterator:
        return HistoryIterator(
            self,
            user_id,
            scope,
            dish_id,
            Config.HISTORY_PAGE_SIZE if page_size is None else page_size,
        )

    async def _fetch_page(
        self,
        user_id: str,
        scope: str,
        dish_id: str,
        page_size: int,
        cursor: Optional[tuple[datetime, int]],
    ) -> List[HistoryEntryView]:
        conditions = [
            RankHistoryEntry.user_id == user_id,
            RankHistoryEntry.scope == scope,
            RankHistoryEntry.dish_id == dish_id,
        ]
        if cursor is not None:
            recorded_at, entry_id = cursor
            conditions.append(
                or_(
                    RankHistoryEntry.recorded_at < recorded_at,
                    and_(
                        RankHistoryEntry.recorded_at == recorded_at,
                        RankHistoryEntry.id < entry_id,
                    ),
                )
            )

        async with DatabaseService.get_session() as session:
            rows = await self.find_many_where(
                session,
                *conditions,
                order_by=[
                    RankHistoryEntry.recorded_at.desc(),
                    RankHistoryEntry.id.desc(),
                ],
                limit=page_size,
            )
            return [HistoryEntryView.from_model(row) for row in rows]

    async def get_scope_history(
        self, user_id: str, scope: str
    ) -> List[HistoryEntryView]:
        """The whole ledger for (user, scope) in append order."""
        async with DatabaseService.get_session() as session:
            rows = await self.find_many_where(
                session,
                RankHistoryEntry.user_id == user_id,
                RankHistoryEntry.scope == scope,
                order_by=[RankHistoryEntry.id.asc()],
            )
            return [HistoryEntryView.from_model(row) for row in rows]

    async def get_previous_rank(
        self, user_id: str, scope: str, dish_id: str
    ) -> Optional[int]:
        """
        Most recent prior rank of the dish, or None if it was never moved,
        shifted or removed since entering.
        """
        async for entry in self.get_history(user_id, scope, dish_id):
            if entry.previous_rank is not None and entry.event is not RankEvent.NOTE_UPDATED:
                return entry.previous_rank
        return None

    replay = staticmethod(replay)
