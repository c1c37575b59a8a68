"""Small assertion helpers shared by the test modules."""

from __future__ import annotations

from typing import Dict


def ranks_of(result) -> Dict[str, int]:
    """``{dish_id: rank}`` from a MutationResult or a list of RankingView."""
    rankings = getattr(result, "rankings", result)
    return {view.dish_id: view.rank for view in rankings}


def assert_dense(result) -> None:
    ranks = sorted(ranks_of(result).values())
    assert ranks == list(range(1, len(ranks) + 1))
