"""
Pure aggregate arithmetic: average, distribution and trend derivation.

Everything here is a function of plain values so the aggregation engine can be
tested without a database. Lower average rank is better, so a falling average
is an ``up`` trend.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

from src.database.models import Trend


def average_rank(ranks: Sequence[int]) -> Optional[float]:
    """Arithmetic mean of ``ranks``, or None when nobody ranks the dish."""
    if not ranks:
        return None
    return sum(ranks) / len(ranks)


def compute_distribution(ranks: Sequence[int], depth: int = 5) -> Dict[str, int]:
    """
    Count users ranking the dish at each of the top ``depth`` positions.

    Keys are the positions as strings ("1".."depth"), every key is present,
    and ranks deeper than ``depth`` are not bucketed.
    """
    distribution = {str(position): 0 for position in range(1, depth + 1)}
    for rank in ranks:
        if 1 <= rank <= depth:
            distribution[str(rank)] += 1
    return distribution


def derive_trend(
    previous_average: Optional[float],
    new_average: Optional[float],
    epsilon: float = 0.01,
) -> Trend:
    """
    Compare a fresh average with the stored snapshot.

    >>> derive_trend(None, 1.0)
    <Trend.NEW: 'new'>
    >>> derive_trend(1.0, 2.0)
    <Trend.DOWN: 'down'>
    """
    if new_average is None:
        return Trend.NONE
    if previous_average is None:
        return Trend.NEW

    delta = new_average - previous_average
    if delta < -epsilon:
        return Trend.UP
    if delta > epsilon:
        return Trend.DOWN
    return Trend.NONE
