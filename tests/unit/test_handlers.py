"""
Unit tests for the request handlers.

Services are mocked; these tests pin the response shapes and the mapping of
exceptions onto error envelopes.
"""

import pytest

from src.database.models import Trend
from src.modules.aggregation.views import AggregateView
from src.modules.api.errors import INTERNAL_ERROR_MESSAGE, format_error, status_for
from src.modules.api.handlers import RankingHandlers
from src.modules.ranking.views import MutationResult, RankingView
from src.modules.shared.exceptions import (
    ConcurrentMutationConflictError,
    InvalidScopeError,
    OutOfRangeRankError,
    RankingNotFoundError,
    ValidationError,
)


def _view(dish_id, rank):
    return RankingView(
        user_id="u1",
        scope="all",
        dish_id=dish_id,
        rank=rank,
        note=None,
        photo_refs=(),
        created_at=None,
        updated_at=None,
    )


@pytest.fixture
def handlers(mock_ranking_service, mock_query_service):
    return RankingHandlers(mock_ranking_service, mock_query_service)


@pytest.mark.unit
class TestStatusMapping:
    @pytest.mark.parametrize(
        "error, status",
        [
            (ValidationError("rank", "bad"), 400),
            (OutOfRangeRankError(9, 1, 3), 400),
            (InvalidScopeError("brunch", ["all"]), 400),
            (RankingNotFoundError("u1", "all", "d1"), 404),
            (ConcurrentMutationConflictError("rank:user:all:u1", 5.0), 409),
            (RuntimeError("db exploded"), 500),
        ],
    )
    def test_status_for(self, error, status):
        assert status_for(error) == status

    def test_internal_errors_are_not_leaked(self):
        envelope = format_error(RuntimeError("password=hunter2"))

        assert envelope["ok"] is False
        assert envelope["error"]["status"] == 500
        assert envelope["error"]["message"] == INTERNAL_ERROR_MESSAGE
        assert "hunter2" not in str(envelope)

    def test_conflict_envelope_is_retryable(self):
        envelope = format_error(ConcurrentMutationConflictError("rank:user:all:u1", 5.0))

        assert envelope["error"]["status"] == 409
        assert envelope["error"]["is_retryable"] is True
        assert envelope["error"]["error_code"] == "CONCURRENT_MUTATION_CONFLICT"


@pytest.mark.unit
class TestPostRank:
    async def test_returns_full_updated_list(self, handlers, mock_ranking_service):
        mock_ranking_service.upsert_rank.return_value = MutationResult(
            user_id="u1",
            scope="all",
            rankings=[_view("d2", 1), _view("d1", 2)],
            history=[object(), object()],
            affected_dish_ids=frozenset({"d1", "d2"}),
        )

        response = await handlers.post_rank(
            "u1", {"scope": "all", "dish_id": "d2", "rank": 1, "note": "best"}
        )

        assert response["ok"] is True
        assert [item["dish_id"] for item in response["rankings"]] == ["d2", "d1"]
        assert response["affected_dish_ids"] == ["d1", "d2"]
        assert response["changed"] is True
        mock_ranking_service.upsert_rank.assert_awaited_once_with(
            "u1", "all", "d2", 1, note="best", photo_refs=None
        )

    async def test_missing_rank_is_400(self, handlers, mock_ranking_service):
        response = await handlers.post_rank("u1", {"scope": "all", "dish_id": "d1"})

        assert response["ok"] is False
        assert response["error"]["status"] == 400
        assert response["error"]["details"]["field"] == "rank"
        mock_ranking_service.upsert_rank.assert_not_awaited()

    async def test_non_object_body_is_400(self, handlers):
        response = await handlers.post_rank("u1", ["all", "d1", 1])

        assert response["error"]["status"] == 400

    async def test_out_of_range_is_400(self, handlers, mock_ranking_service):
        mock_ranking_service.upsert_rank.side_effect = OutOfRangeRankError(7, 1, 4)

        response = await handlers.post_rank("u1", {"scope": "all", "dish_id": "d1", "rank": 7})

        assert response["error"]["status"] == 400
        assert response["error"]["details"]["max_rank"] == 4


@pytest.mark.unit
class TestDeleteRank:
    async def test_not_ranked_is_404(self, handlers, mock_ranking_service):
        mock_ranking_service.remove_rank.side_effect = RankingNotFoundError("u1", "all", "d9")

        response = await handlers.delete_rank("u1", {"scope": "all", "dish_id": "d9"})

        assert response["error"]["status"] == 404

    async def test_unexpected_error_is_500(self, handlers, mock_ranking_service):
        mock_ranking_service.remove_rank.side_effect = RuntimeError("disk full")

        response = await handlers.delete_rank("u1", {"scope": "all", "dish_id": "d1"})

        assert response["error"]["status"] == 500


@pytest.mark.unit
class TestReads:
    async def test_get_rankings(self, handlers, mock_query_service):
        mock_query_service.list_user_rankings.return_value = [_view("d1", 1)]

        response = await handlers.get_rankings("u1", {"scope": "all"})

        assert response["rankings"][0]["rank"] == 1

    async def test_unranked_dish_reports_empty_score(self, handlers):
        response = await handlers.get_dish_aggregate("d1", {"scope": "all"})

        assert response["ok"] is True
        assert response["average_rank"] is None
        assert response["rank_count"] == 0
        assert response["trend"] == "none"

    async def test_dish_aggregate(self, handlers, mock_query_service):
        mock_query_service.get_dish_aggregate.return_value = AggregateView(
            dish_id="d1",
            scope="all",
            average_rank=2.0,
            rank_count=2,
            trend=Trend.DOWN,
        )

        response = await handlers.get_dish_aggregate("d1", {"scope": "all"})

        assert (response["average_rank"], response["rank_count"], response["trend"]) == (
            2.0,
            2,
            "down",
        )

    async def test_top_dishes_defaults(self, handlers, mock_query_service):
        await handlers.get_top_dishes({"scope": "all"})

        mock_query_service.list_top_dishes.assert_awaited_once_with(
            "all", limit=20, min_rank_count=1
        )
