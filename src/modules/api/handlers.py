"""
Request handlers for the ranking core.

Transport-neutral: each handler takes the authenticated caller id (where the
operation needs one) and a request body dict, and returns a JSON-ready dict.
Success is ``{"ok": True, ...}``; failures are error envelopes built by
``format_error``. An HTTP layer maps routes onto these methods one to one.

    POST   /rankings            -> post_rank
    DELETE /rankings            -> delete_rank
    GET    /rankings            -> get_rankings
    GET    /dishes/{id}/score   -> get_dish_aggregate
    GET    /dishes/top          -> get_top_dishes
"""

from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Mapping, Optional

from src.core.logging.logger import get_logger
from src.modules.api.errors import format_error, status_for
from src.modules.ranking.views import MutationResult
from src.modules.shared.exceptions import ValidationError, get_error_severity

if TYPE_CHECKING:
    from src.modules.query.facade import RankingQueryService
    from src.modules.ranking.service import RankingService

logger = get_logger(__name__)

Response = Dict[str, Any]


def _handler(name: str) -> Callable[[Callable[..., Awaitable[Response]]], Callable[..., Awaitable[Response]]]:
    """Turn exceptions raised by a handler into error envelopes."""

    def decorator(func: Callable[..., Awaitable[Response]]) -> Callable[..., Awaitable[Response]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                status = status_for(exc)
                if status >= 500:
                    logger.error(
                        f"Unhandled error in {name}",
                        extra={"handler": name, "error_type": type(exc).__name__},
                        exc_info=True,
                    )
                else:
                    logger.info(
                        f"Request rejected by {name}",
                        extra={
                            "handler": name,
                            "status": status,
                            "error_type": type(exc).__name__,
                            "severity": get_error_severity(exc).value,
                        },
                    )
                return format_error(exc)

        return wrapper

    return decorator


def _require(body: Mapping[str, Any], field: str) -> Any:
    if field not in body or body[field] is None:
        raise ValidationError(field, f"{field} is required")
    return body[field]


def _body(body: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    if body is None:
        return {}
    if not isinstance(body, Mapping):
        raise ValidationError("body", "request body must be an object")
    return body


def _mutation_response(result: MutationResult) -> Response:
    return {
        "ok": True,
        "user_id": result.user_id,
        "scope": result.scope,
        "rankings": [view.to_dict() for view in result.rankings],
        "changed": result.changed,
        "affected_dish_ids": sorted(result.affected_dish_ids),
    }


class RankingHandlers:
    def __init__(self, ranking: RankingService, query: RankingQueryService) -> None:
        self.ranking = ranking
        self.query = query

    @_handler("post_rank")
    async def post_rank(self, user_id: str, body: Optional[Mapping[str, Any]]) -> Response:
        """Rank or re-rank a dish; returns the caller's full updated list."""
        body = _body(body)
        result = await self.ranking.upsert_rank(
            user_id,
            _require(body, "scope"),
            _require(body, "dish_id"),
            _require(body, "rank"),
            note=body.get("note"),
            photo_refs=body.get("photo_refs"),
        )
        return _mutation_response(result)

    @_handler("delete_rank")
    async def delete_rank(self, user_id: str, body: Optional[Mapping[str, Any]]) -> Response:
        body = _body(body)
        result = await self.ranking.remove_rank(
            user_id, _require(body, "scope"), _require(body, "dish_id")
        )
        return _mutation_response(result)

    @_handler("get_rankings")
    async def get_rankings(self, user_id: str, body: Optional[Mapping[str, Any]]) -> Response:
        body = _body(body)
        scope = _require(body, "scope")
        rankings = await self.query.list_user_rankings(user_id, scope)
        return {
            "ok": True,
            "user_id": user_id,
            "scope": scope,
            "rankings": [view.to_dict() for view in rankings],
        }

    @_handler("get_dish_aggregate")
    async def get_dish_aggregate(self, dish_id: str, body: Optional[Mapping[str, Any]]) -> Response:
        """
        Score of one dish. A dish nobody has ranked reports a null average,
        count 0 and trend ``none`` rather than 404.
        """
        body = _body(body)
        scope = _require(body, "scope")
        view = await self.query.get_dish_aggregate(dish_id, scope)
        if view is None:
            return {
                "ok": True,
                "dish_id": dish_id,
                "scope": scope,
                "average_rank": None,
                "rank_count": 0,
                "trend": "none",
                "rank_distribution": {},
                "recomputed_at": None,
            }
        return {"ok": True, **view.to_dict()}

    @_handler("get_top_dishes")
    async def get_top_dishes(self, body: Optional[Mapping[str, Any]]) -> Response:
        body = _body(body)
        scope = _require(body, "scope")
        dishes = await self.query.list_top_dishes(
            scope,
            limit=body.get("limit", 20),
            min_rank_count=body.get("min_rank_count", 1),
        )
        return {
            "ok": True,
            "scope": scope,
            "dishes": [view.to_dict() for view in dishes],
        }
