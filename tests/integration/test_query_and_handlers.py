"""
Integration tests for the read facade and the request handlers.

Covers top-dish ordering, thresholds and limits, and the handlers end to end
against a real database.
"""

import pytest

from src.core.config.config import Config
from src.modules.shared.exceptions import InvalidScopeError, ValidationError


@pytest.fixture
async def leaderboard(ranking):
    """
    Aggregates after this fixture:

    V avg 1.0 count 2, W avg 1.0 count 1, X avg 1.5 count 2,
    Y avg 1.5 count 2, Z avg 3.0 count 1.
    """
    await ranking.upsert_rank("A", "all", "X", 1)
    await ranking.upsert_rank("A", "all", "Y", 2)
    await ranking.upsert_rank("A", "all", "Z", 3)
    await ranking.upsert_rank("B", "all", "Y", 1)
    await ranking.upsert_rank("B", "all", "X", 2)
    await ranking.upsert_rank("C", "all", "W", 1)
    await ranking.upsert_rank("D", "all", "V", 1)
    await ranking.upsert_rank("E", "all", "V", 1)
    return ranking


@pytest.mark.integration
@pytest.mark.database
class TestTopDishes:
    async def test_ordering(self, leaderboard, query):
        top = await query.list_top_dishes("all")

        assert [view.dish_id for view in top] == ["V", "W", "X", "Y", "Z"]
        assert [view.rank_count for view in top] == [2, 1, 2, 2, 1]

    async def test_min_rank_count(self, leaderboard, query):
        top = await query.list_top_dishes("all", min_rank_count=2)

        assert [view.dish_id for view in top] == ["V", "X", "Y"]

    async def test_limit(self, leaderboard, query):
        top = await query.list_top_dishes("all", limit=2)

        assert [view.dish_id for view in top] == ["V", "W"]

    async def test_limit_is_capped(self, leaderboard, query, monkeypatch):
        monkeypatch.setattr(Config, "TOP_DISHES_MAX_LIMIT", 3)

        top = await query.list_top_dishes("all", limit=50)

        assert len(top) == 3

    async def test_dishes_nobody_ranks_anymore_are_excluded(self, leaderboard, query):
        await leaderboard.remove_rank("C", "all", "W")

        top = await query.list_top_dishes("all")

        assert "W" not in [view.dish_id for view in top]

    async def test_empty_scope(self, leaderboard, query):
        assert await query.list_top_dishes("dessert") == []

    @pytest.mark.parametrize("limit", [0, -1, "5", True, 2.5])
    async def test_invalid_limit(self, query, database, limit):
        with pytest.raises(ValidationError):
            await query.list_top_dishes("all", limit=limit)

    async def test_invalid_scope(self, query):
        with pytest.raises(InvalidScopeError):
            await query.list_top_dishes("brunch")


@pytest.mark.integration
@pytest.mark.database
class TestHandlersEndToEnd:
    async def test_post_and_get_rankings(self, container):
        handlers = container.handlers

        await handlers.post_rank("u1", {"scope": "all", "dish_id": "ramen", "rank": 1})
        response = await handlers.post_rank(
            "u1", {"scope": "all", "dish_id": "pho", "rank": 1, "note": "bright"}
        )

        assert response["ok"] is True
        assert response["changed"] is True
        assert response["affected_dish_ids"] == ["pho", "ramen"]
        assert [(r["dish_id"], r["rank"]) for r in response["rankings"]] == [
            ("pho", 1),
            ("ramen", 2),
        ]

        listing = await handlers.get_rankings("u1", {"scope": "all"})
        assert listing["rankings"] == response["rankings"]

    async def test_out_of_range_is_400(self, container):
        response = await container.handlers.post_rank(
            "u1", {"scope": "all", "dish_id": "ramen", "rank": 2}
        )

        assert response["ok"] is False
        assert response["error"]["status"] == 400
        assert response["error"]["error_type"] == "OutOfRangeRankError"

    async def test_missing_field_is_400(self, container):
        response = await container.handlers.post_rank("u1", {"scope": "all", "rank": 1})

        assert response["error"]["status"] == 400
        assert response["error"]["details"]["field"] == "dish_id"

    async def test_delete_unranked_is_404(self, container):
        response = await container.handlers.delete_rank(
            "u1", {"scope": "all", "dish_id": "ramen"}
        )

        assert response["error"]["status"] == 404

    async def test_delete(self, container):
        handlers = container.handlers
        await handlers.post_rank("u1", {"scope": "all", "dish_id": "a", "rank": 1})
        await handlers.post_rank("u1", {"scope": "all", "dish_id": "b", "rank": 2})

        response = await handlers.delete_rank("u1", {"scope": "all", "dish_id": "a"})

        assert [(r["dish_id"], r["rank"]) for r in response["rankings"]] == [("b", 1)]
        assert response["affected_dish_ids"] == ["a", "b"]

    async def test_dish_aggregate(self, container):
        handlers = container.handlers
        await handlers.post_rank("u1", {"scope": "all", "dish_id": "a", "rank": 1})

        response = await handlers.get_dish_aggregate("a", {"scope": "all"})

        assert response["ok"] is True
        assert response["average_rank"] == 1.0
        assert response["rank_count"] == 1
        assert response["trend"] == "new"

    async def test_unknown_dish_aggregate_is_empty(self, container):
        response = await container.handlers.get_dish_aggregate("ghost", {"scope": "all"})

        assert response["ok"] is True
        assert response["average_rank"] is None
        assert response["rank_count"] == 0
        assert response["trend"] == "none"

    async def test_top_dishes(self, container):
        handlers = container.handlers
        await handlers.post_rank("u1", {"scope": "all", "dish_id": "a", "rank": 1})
        await handlers.post_rank("u1", {"scope": "all", "dish_id": "b", "rank": 2})

        response = await handlers.get_top_dishes({"scope": "all", "limit": 1})

        assert [d["dish_id"] for d in response["dishes"]] == ["a"]


@pytest.mark.integration
@pytest.mark.database
class TestTimestamps:
    async def test_written_and_read_timestamps_match(self, container):
        handlers = container.handlers

        posted = await handlers.post_rank("u1", {"scope": "all", "dish_id": "a", "rank": 1})
        listed = await handlers.get_rankings("u1", {"scope": "all"})

        assert posted["rankings"][0]["created_at"] == listed["rankings"][0]["created_at"]
        assert posted["rankings"][0]["created_at"].endswith("+00:00")

    async def test_stored_timestamps_are_utc(self, ranking, aggregation, query):
        result = await ranking.upsert_rank("u1", "all", "a", 1)
        recomputed = await aggregation.recompute("a", "all")

        stored = (await query.list_user_rankings("u1", "all"))[0]
        aggregate = await query.get_dish_aggregate("a", "all")
        entry = (await query.get_dish_history("u1", "all", "a"))[0]

        assert stored.created_at == result.rankings[0].created_at
        assert stored.created_at.tzinfo is not None
        assert aggregate.recomputed_at == recomputed.recomputed_at
        assert aggregate.recomputed_at.utcoffset().total_seconds() == 0
        assert entry.recorded_at == result.history[0].recorded_at
        assert entry.to_dict()["recorded_at"] == result.history[0].to_dict()["recorded_at"]
