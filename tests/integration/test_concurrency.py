"""
Concurrency tests: overlapping mutations and recomputes.

Mutations on one user's list are serialized by the user lock, so any
interleaving of concurrent calls must leave a dense list whose ledger replays
to the store. Recomputes for one dish are serialized by the dish lock and the
last one observes every committed ranking.
"""

import asyncio

import pytest

from src.core.locking.service import user_lock_key
from src.modules.history.ledger import replay
from src.modules.shared.exceptions import ConcurrentMutationConflictError
from tests.helpers import assert_dense, ranks_of


@pytest.mark.integration
@pytest.mark.database
class TestConcurrentMutations:
    async def test_concurrent_inserts_for_one_user_stay_dense(self, ranking, query):
        # Every requested rank is 1, always within [1, N+1]
        await asyncio.gather(
            *(ranking.upsert_rank("u1", "all", f"dish-{i}", 1) for i in range(12))
        )

        rankings = await query.list_user_rankings("u1", "all")
        assert_dense(rankings)
        assert len(rankings) == 12

        ledger = await ranking.ledger.get_scope_history("u1", "all")
        assert replay(ledger) == ranks_of(rankings)

    async def test_concurrent_moves_and_removals(self, ranking, query):
        for position in range(1, 9):
            await ranking.upsert_rank("u1", "all", f"d{position}", position)

        await asyncio.gather(
            ranking.upsert_rank("u1", "all", "d8", 1),
            ranking.remove_rank("u1", "all", "d3"),
            ranking.upsert_rank("u1", "all", "d1", 5),
            ranking.remove_rank("u1", "all", "d6"),
            ranking.upsert_rank("u1", "all", "new", 1),
        )

        rankings = await query.list_user_rankings("u1", "all")
        assert_dense(rankings)
        assert sorted(ranks_of(rankings)) == ["d1", "d2", "d4", "d5", "d7", "d8", "new"]

        ledger = await ranking.ledger.get_scope_history("u1", "all")
        assert replay(ledger) == ranks_of(rankings)

    async def test_users_rank_one_dish_concurrently(self, ranking, query):
        users = [f"user-{i}" for i in range(8)]

        await asyncio.gather(*(ranking.upsert_rank(user, "all", "X", 1) for user in users))

        aggregate = await query.get_dish_aggregate("X", "all")
        assert aggregate.rank_count == len(users)
        assert aggregate.average_rank == pytest.approx(1.0)

    async def test_concurrent_recomputes_converge(self, ranking, aggregation, query):
        await ranking.upsert_rank("A", "all", "X", 1)
        await ranking.upsert_rank("B", "all", "P", 1)
        await ranking.upsert_rank("B", "all", "X", 2)

        await asyncio.gather(*(aggregation.recompute("X", "all") for _ in range(5)))

        aggregate = await query.get_dish_aggregate("X", "all")
        assert aggregate.rank_count == 2
        assert aggregate.average_rank == pytest.approx(1.5)


@pytest.mark.integration
@pytest.mark.database
class TestLockContention:
    async def test_held_lock_times_out_as_conflict(self, container, ranking, query):
        await ranking.upsert_rank("u1", "all", "a", 1)
        container.locks.wait_timeout = 0.05

        async with container.locks.acquire(user_lock_key("all", "u1"), operation="test"):
            with pytest.raises(ConcurrentMutationConflictError) as exc_info:
                await ranking.upsert_rank("u1", "all", "b", 1)

        assert exc_info.value.is_retryable
        assert ranks_of(await query.list_user_rankings("u1", "all")) == {"a": 1}

    async def test_other_users_are_not_blocked(self, container, ranking):
        container.locks.wait_timeout = 0.05

        async with container.locks.acquire(user_lock_key("all", "u1"), operation="test"):
            result = await ranking.upsert_rank("u2", "all", "b", 1)

        assert ranks_of(result) == {"b": 1}
