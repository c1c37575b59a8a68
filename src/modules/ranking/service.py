"""
Ranking Service - rank mutation engine

Purpose
-------
Insert, move and remove dishes in a user's personal list for one scope while
keeping the ranks a dense 1..N permutation, recording every change in the
history ledger, and handing the affected dishes to the aggregation engine.

Responsibilities
----------------
- Validate input (ids, scope, rank type and window, note, photo references)
- Serialize mutations per (user, scope) with LockService + SELECT FOR UPDATE
- Plan shifts with shift_logic and persist them in two phases
- Append one history entry per changed row in the same transaction
- Publish ``ranking.changed`` after commit

Non-Responsibilities
--------------------
- Recomputing aggregates (AggregationService listens for ranking.changed)
- Retrying on lock contention (callers retry ConcurrentMutationConflictError)

Transaction Flow
----------------
1. acquire lock ``rank:user:{scope}:{user_id}``
2. open transaction, lock the user's rows
3. plan, apply, append history, commit
4. release lock
5. publish ``ranking.changed`` with the affected dish ids
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Type

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.core.event import RANKING_CHANGED
from src.core.locking.service import LockService, user_lock_key
from src.core.logging.logger import LogContext
from src.database.models import RankEvent, Ranking
from src.modules.history.ledger import (
    REMOVED,
    ActiveRank,
    HistoryLedger,
    HistoryRecord,
)
from src.modules.ranking import shift_logic
from src.modules.ranking.store import RankStore
from src.modules.ranking.views import MutationResult, RankingView
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import RankingNotFoundError
from src.modules.shared.validators import (
    validate_identifier,
    validate_note,
    validate_photo_refs,
    validate_rank_value,
    validate_scope,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.event.bus import EventBus


class RankingService(BaseService):
    """Sole writer of ``dish_rankings``."""

    def __init__(
        self,
        config: Type[Config],
        event_bus: EventBus,
        logger: Logger,
        lock_service: LockService,
        store: Optional[RankStore] = None,
        ledger: Optional[HistoryLedger] = None,
    ) -> None:
        super().__init__(config, event_bus, logger)
        self.locks = lock_service
        self.store = store or RankStore()
        self.ledger = ledger or HistoryLedger()

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def _validate_target(self, user_id: Any, scope: Any, dish_id: Any) -> tuple[str, str, str]:
        return (
            validate_identifier("user_id", user_id),
            validate_scope(scope, self.get_config("RANKING_SCOPES", ["all"])),
            validate_identifier("dish_id", dish_id),
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def upsert_rank(
        self,
        user_id: str,
        scope: str,
        dish_id: str,
        requested_rank: int,
        note: Optional[str] = None,
        photo_refs: Optional[Sequence[str]] = None,
    ) -> MutationResult:
        """
        Rank a new dish or move an already ranked one.

        ``note`` and ``photo_refs`` of None leave the stored values unchanged;
        an empty note or an empty list clears them.

        Raises
        ------
        ValidationError
            Malformed ids, non-integer rank, overlong note, too many photos.
        InvalidScopeError
            Scope not in RANKING_SCOPES.
        OutOfRangeRankError
            Rank outside [1, N+1] for a new dish or [1, N] for a move.
        ConcurrentMutationConflictError
            The user's list stayed locked past LOCK_WAIT_TIMEOUT_SECONDS.
        """
        user_id, scope, dish_id = self._validate_target(user_id, scope, dish_id)
        requested_rank = validate_rank_value(requested_rank)
        note = validate_note(note, self.get_config("RANKING_NOTE_MAX_LENGTH", 2000))
        refs = validate_photo_refs(photo_refs, self.get_config("RANKING_MAX_PHOTO_REFS", 10))

        async with LogContext(
            user_id=user_id, scope=scope, dish_id=dish_id, operation="upsert_rank"
        ):
            async with self.locks.acquire(
                user_lock_key(scope, user_id), operation="upsert_rank"
            ):
                async with DatabaseService.get_transaction() as session:
                    result = await self._upsert_locked(
                        session, user_id, scope, dish_id, requested_rank, note, refs
                    )

            self.log.info(
                "Ranking upserted" if result.changed else "Ranking upsert was a no-op",
                extra={
                    "requested_rank": requested_rank,
                    "history_entries": len(result.history),
                    "affected_dishes": sorted(result.affected_dish_ids),
                    "list_size": len(result.rankings),
                },
            )
            await self._publish_change(result, "upsert_rank")
            return result

    async def remove_rank(self, user_id: str, scope: str, dish_id: str) -> MutationResult:
        """
        Remove a dish from the user's list; ranks below it move up by one.

        Raises
        ------
        RankingNotFoundError
            The user has not ranked the dish in this scope.
        ValidationError, InvalidScopeError, ConcurrentMutationConflictError
            As for upsert_rank.
        """
        user_id, scope, dish_id = self._validate_target(user_id, scope, dish_id)

        async with LogContext(
            user_id=user_id, scope=scope, dish_id=dish_id, operation="remove_rank"
        ):
            async with self.locks.acquire(
                user_lock_key(scope, user_id), operation="remove_rank"
            ):
                async with DatabaseService.get_transaction() as session:
                    result = await self._remove_locked(session, user_id, scope, dish_id)

            self.log.info(
                "Ranking removed",
                extra={
                    "history_entries": len(result.history),
                    "affected_dishes": sorted(result.affected_dish_ids),
                    "list_size": len(result.rankings),
                },
            )
            await self._publish_change(result, "remove_rank")
            return result

    # ------------------------------------------------------------------ #
    # Locked sections (inside the transaction)
    # ------------------------------------------------------------------ #

    async def _upsert_locked(
        self,
        session: AsyncSession,
        user_id: str,
        scope: str,
        dish_id: str,
        requested_rank: int,
        note: Optional[str],
        refs: Optional[List[str]],
    ) -> MutationResult:
        rows = await self.store.lock_user_rankings(session, user_id, scope)
        by_dish: Dict[str, Ranking] = {row.dish_id: row for row in rows}
        ordering = {row.dish_id: row.rank for row in rows}
        existing = by_dish.get(dish_id)

        if existing is None:
            plan = shift_logic.plan_insert(ordering, dish_id, requested_rank)
        else:
            plan = shift_logic.plan_move(ordering, dish_id, requested_rank)

        stored_note = note or None

        if existing is not None and plan.is_noop:
            note_changed = note is not None and stored_note != existing.note
            photos_changed = refs is not None and refs != list(existing.photo_refs or [])
            if not (note_changed or photos_changed):
                return MutationResult(
                    user_id=user_id,
                    scope=scope,
                    rankings=[RankingView.from_model(row) for row in rows],
                )

            if note_changed:
                existing.note = stored_note
            if photos_changed:
                existing.photo_refs = refs
            await self.store.flush(session)

            entries = await self.ledger.append(
                session,
                [
                    HistoryRecord(
                        user_id=user_id,
                        scope=scope,
                        dish_id=dish_id,
                        event=RankEvent.NOTE_UPDATED,
                        state=ActiveRank(existing.rank),
                        previous_rank=existing.rank,
                        note=existing.note,
                    )
                ],
            )
            # Rank unchanged, so aggregates are unaffected
            return MutationResult(
                user_id=user_id,
                scope=scope,
                rankings=[RankingView.from_model(row) for row in rows],
                history=entries,
            )

        if existing is not None:
            if note is not None:
                existing.note = stored_note
            if refs is not None:
                existing.photo_refs = refs

        new_row: Optional[Ranking] = None
        if existing is None:
            new_row = Ranking(
                user_id=user_id,
                scope=scope,
                dish_id=dish_id,
                rank=requested_rank,
                note=stored_note,
                photo_refs=refs or [],
            )

        await self._apply_plan(session, plan, by_dish, new_row)

        records: List[HistoryRecord] = []
        for change in plan.changes:
            row = new_row if change.is_entry else by_dish[change.dish_id]
            assert row is not None and change.new_rank is not None
            if change.is_entry:
                event = RankEvent.ENTERED
            elif change.dish_id == dish_id:
                event = RankEvent.MOVED
            else:
                event = RankEvent.SHIFTED
            records.append(
                HistoryRecord(
                    user_id=user_id,
                    scope=scope,
                    dish_id=change.dish_id,
                    event=event,
                    state=ActiveRank(change.new_rank),
                    previous_rank=change.old_rank,
                    note=row.note,
                )
            )
        entries = await self.ledger.append(session, records)

        final_rows = list(by_dish.values()) + ([new_row] if new_row is not None else [])
        return self._build_result(user_id, scope, final_rows, entries, plan)

    async def _remove_locked(
        self,
        session: AsyncSession,
        user_id: str,
        scope: str,
        dish_id: str,
    ) -> MutationResult:
        rows = await self.store.lock_user_rankings(session, user_id, scope)
        by_dish: Dict[str, Ranking] = {row.dish_id: row for row in rows}
        target = by_dish.get(dish_id)
        if target is None:
            raise RankingNotFoundError(user_id, scope, dish_id)

        plan = shift_logic.plan_remove({row.dish_id: row.rank for row in rows}, dish_id)
        removed_note = target.note

        await self._apply_plan(session, plan, by_dish, None)

        records: List[HistoryRecord] = []
        for change in plan.changes:
            if change.is_removal:
                records.append(
                    HistoryRecord(
                        user_id=user_id,
                        scope=scope,
                        dish_id=change.dish_id,
                        event=RankEvent.REMOVED,
                        state=REMOVED,
                        previous_rank=change.old_rank,
                        note=removed_note,
                    )
                )
            else:
                assert change.new_rank is not None
                records.append(
                    HistoryRecord(
                        user_id=user_id,
                        scope=scope,
                        dish_id=change.dish_id,
                        event=RankEvent.SHIFTED,
                        state=ActiveRank(change.new_rank),
                        previous_rank=change.old_rank,
                        note=by_dish[change.dish_id].note,
                    )
                )
        entries = await self.ledger.append(session, records)

        remaining = [row for key, row in by_dish.items() if key != dish_id]
        return self._build_result(user_id, scope, remaining, entries, plan)

    async def _apply_plan(
        self,
        session: AsyncSession,
        plan: shift_logic.ShiftPlan,
        by_dish: Dict[str, Ranking],
        new_row: Optional[Ranking],
    ) -> None:
        """
        Persist a plan without ever holding two rows at the same rank.

        Removals are deleted first, then moving rows are parked at the
        negative of their final rank, then set to the final rank, and only
        then is a new row inserted.
        """
        moving = [c for c in plan.changes if c.old_rank is not None and c.new_rank is not None]

        for change in plan.changes:
            if change.is_removal:
                await self.store.delete(session, by_dish[change.dish_id])
        if any(change.is_removal for change in plan.changes):
            await self.store.flush(session)

        if moving:
            for change in moving:
                by_dish[change.dish_id].rank = -change.new_rank  # type: ignore[operator]
            await self.store.flush(session)

            for change in moving:
                by_dish[change.dish_id].rank = change.new_rank  # type: ignore[assignment]
            await self.store.flush(session)

        if new_row is not None:
            self.store.add(session, new_row)
            await self.store.flush(session)

    def _build_result(
        self,
        user_id: str,
        scope: str,
        rows: List[Ranking],
        entries: list,
        plan: shift_logic.ShiftPlan,
    ) -> MutationResult:
        ordered = sorted(rows, key=lambda row: row.rank)
        if not shift_logic.is_dense(row.rank for row in ordered):
            # Unreachable while the lock and shift planning hold
            self.log.critical(
                "Rank list is not dense after mutation",
                extra={"ranks": [row.rank for row in ordered]},
            )
            raise RuntimeError(f"rank list for {user_id}/{scope} is not dense")

        return MutationResult(
            user_id=user_id,
            scope=scope,
            rankings=[RankingView.from_model(row) for row in ordered],
            history=entries,
            affected_dish_ids=plan.affected_dish_ids | {plan.target_dish_id},
        )

    async def _publish_change(self, result: MutationResult, operation: str) -> None:
        if not result.affected_dish_ids:
            return
        await self.emit_event(
            RANKING_CHANGED,
            {
                "user_id": result.user_id,
                "scope": result.scope,
                "dish_ids": sorted(result.affected_dish_ids),
                "operation": operation,
            },
        )
