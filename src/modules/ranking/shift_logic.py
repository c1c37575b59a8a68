"""
Pure shift planning for dense rank lists.

A user's list in one scope is a mapping ``dish_id -> rank`` whose ranks are
exactly 1..N. Every mutation is planned here as a list of ``RankChange``
records before anything touches the database, so the algorithm can be tested
without a session and the service only has to persist the plan.

Window rules:
- insert: requested rank in [1, N + 1]; ranks >= requested shift down by one
- move:   new rank in [1, N]; the dishes between old and new shift by one
          toward the vacated slot
- remove: ranks above the removed one shift up by one
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from src.modules.shared.validators import validate_rank_window


@dataclass(frozen=True)
class RankChange:
    """One dish's position change. ``None`` means absent from the list."""

    dish_id: str
    old_rank: Optional[int]
    new_rank: Optional[int]

    @property
    def is_entry(self) -> bool:
        return self.old_rank is None

    @property
    def is_removal(self) -> bool:
        return self.new_rank is None


@dataclass(frozen=True)
class ShiftPlan:
    """
    The full set of rank changes for one mutation.

    ``changes`` lists the target dish first, then displaced dishes in
    ascending order of their old rank. Dishes whose rank does not change are
    not listed.
    """

    target_dish_id: str
    changes: Tuple[RankChange, ...]

    @property
    def is_noop(self) -> bool:
        return not self.changes

    @property
    def affected_dish_ids(self) -> FrozenSet[str]:
        return frozenset(change.dish_id for change in self.changes)

    @property
    def target_change(self) -> Optional[RankChange]:
        for change in self.changes:
            if change.dish_id == self.target_dish_id:
                return change
        return None

    @property
    def displaced(self) -> Tuple[RankChange, ...]:
        return tuple(c for c in self.changes if c.dish_id != self.target_dish_id)

    def apply(self, ordering: Mapping[str, int]) -> Dict[str, int]:
        """Return the ordering after this plan (the input is not modified)."""
        result = dict(ordering)
        for change in self.changes:
            if change.new_rank is None:
                result.pop(change.dish_id, None)
            else:
                result[change.dish_id] = change.new_rank
        return result


def is_dense(ranks: Iterable[int]) -> bool:
    """True when ``ranks`` is exactly 1..N with no duplicates."""
    values = sorted(ranks)
    return values == list(range(1, len(values) + 1))


def _by_rank(ordering: Mapping[str, int]) -> list[Tuple[str, int]]:
    return sorted(ordering.items(), key=lambda item: item[1])


def plan_insert(ordering: Mapping[str, int], dish_id: str, requested_rank: int) -> ShiftPlan:
    """
    Plan entering ``dish_id`` at ``requested_rank``.

    Raises
    ------
    OutOfRangeRankError
        If requested_rank is outside [1, N + 1].
    ValueError
        If the dish is already in the list (use plan_move).
    """
    if dish_id in ordering:
        raise ValueError(f"dish {dish_id!r} is already ranked")

    validate_rank_window(requested_rank, max_rank=len(ordering) + 1)

    changes = [RankChange(dish_id, None, requested_rank)]
    changes.extend(
        RankChange(other, rank, rank + 1)
        for other, rank in _by_rank(ordering)
        if rank >= requested_rank
    )
    return ShiftPlan(target_dish_id=dish_id, changes=tuple(changes))


def plan_move(ordering: Mapping[str, int], dish_id: str, new_rank: int) -> ShiftPlan:
    """
    Plan moving a ranked dish to ``new_rank``.

    Moving to the current rank yields an empty (no-op) plan.

    Raises
    ------
    OutOfRangeRankError
        If new_rank is outside [1, N].
    KeyError
        If the dish is not in the list.
    """
    old_rank = ordering[dish_id]
    validate_rank_window(new_rank, max_rank=len(ordering))

    if new_rank == old_rank:
        return ShiftPlan(target_dish_id=dish_id, changes=())

    changes = [RankChange(dish_id, old_rank, new_rank)]
    for other, rank in _by_rank(ordering):
        if other == dish_id:
            continue
        if new_rank < old_rank and new_rank <= rank <= old_rank - 1:
            changes.append(RankChange(other, rank, rank + 1))
        elif new_rank > old_rank and old_rank + 1 <= rank <= new_rank:
            changes.append(RankChange(other, rank, rank - 1))

    return ShiftPlan(target_dish_id=dish_id, changes=tuple(changes))


def plan_remove(ordering: Mapping[str, int], dish_id: str) -> ShiftPlan:
    """
    Plan removing a ranked dish.

    Raises
    ------
    KeyError
        If the dish is not in the list.
    """
    old_rank = ordering[dish_id]

    changes = [RankChange(dish_id, old_rank, None)]
    changes.extend(
        RankChange(other, rank, rank - 1)
        for other, rank in _by_rank(ordering)
        if rank > old_rank
    )
    return ShiftPlan(target_dish_id=dish_id, changes=tuple(changes))
