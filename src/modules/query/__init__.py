"""Read-only queries over rankings, aggregates and history."""

from .facade import RankingQueryService

__all__ = ["RankingQueryService"]
