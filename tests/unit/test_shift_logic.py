"""
Unit tests for shift planning.

Covers the insert, move and remove windows, the exact set of displaced
dishes, and that applying any plan keeps the list a dense 1..N permutation.
"""

import random

import pytest

from src.modules.ranking.shift_logic import (
    RankChange,
    is_dense,
    plan_insert,
    plan_move,
    plan_remove,
)
from src.modules.shared.exceptions import OutOfRangeRankError


def _ordering(n: int) -> dict:
    return {f"d{rank}": rank for rank in range(1, n + 1)}


@pytest.mark.unit
class TestPlanInsert:
    """Entering a new dish."""

    def test_insert_into_empty_list(self):
        plan = plan_insert({}, "d1", 1)

        assert plan.changes == (RankChange("d1", None, 1),)
        assert plan.apply({}) == {"d1": 1}

    def test_insert_in_middle_shifts_lower_ranks_down(self):
        plan = plan_insert(_ordering(4), "new", 2)

        assert plan.target_change == RankChange("new", None, 2)
        assert plan.displaced == (
            RankChange("d2", 2, 3),
            RankChange("d3", 3, 4),
            RankChange("d4", 4, 5),
        )
        assert plan.apply(_ordering(4)) == {"d1": 1, "new": 2, "d2": 3, "d3": 4, "d4": 5}

    def test_insert_at_end_shifts_nothing(self):
        plan = plan_insert(_ordering(3), "new", 4)

        assert plan.displaced == ()
        assert plan.affected_dish_ids == frozenset({"new"})

    @pytest.mark.parametrize("rank", [0, -1, 5])
    def test_insert_outside_window_is_rejected(self, rank):
        with pytest.raises(OutOfRangeRankError) as exc_info:
            plan_insert(_ordering(3), "new", rank)

        assert exc_info.value.min_rank == 1
        assert exc_info.value.max_rank == 4

    def test_insert_of_ranked_dish_raises(self):
        with pytest.raises(ValueError):
            plan_insert(_ordering(3), "d2", 1)


@pytest.mark.unit
class TestPlanMove:
    """Moving an already ranked dish."""

    def test_move_up_five_to_two_in_six(self):
        ordering = _ordering(6)

        plan = plan_move(ordering, "d5", 2)
        result = plan.apply(ordering)

        assert result["d5"] == 2
        assert (result["d2"], result["d3"], result["d4"]) == (3, 4, 5)
        assert result["d1"] == 1 and result["d6"] == 6
        assert len(result) == 6
        assert plan.affected_dish_ids == frozenset({"d2", "d3", "d4", "d5"})

    def test_move_down_shifts_between_up(self):
        ordering = _ordering(5)

        result = plan_move(ordering, "d1", 4).apply(ordering)

        assert result == {"d2": 1, "d3": 2, "d4": 3, "d1": 4, "d5": 5}

    def test_move_to_same_rank_is_noop(self):
        plan = plan_move(_ordering(3), "d2", 2)

        assert plan.is_noop
        assert plan.affected_dish_ids == frozenset()

    def test_move_beyond_list_size_is_rejected(self):
        with pytest.raises(OutOfRangeRankError) as exc_info:
            plan_move(_ordering(3), "d1", 4)

        assert exc_info.value.max_rank == 3

    def test_move_of_unranked_dish_raises(self):
        with pytest.raises(KeyError):
            plan_move(_ordering(3), "missing", 1)


@pytest.mark.unit
class TestPlanRemove:
    """Removing a ranked dish."""

    def test_remove_three_of_five(self):
        ordering = _ordering(5)

        plan = plan_remove(ordering, "d3")

        assert plan.target_change == RankChange("d3", 3, None)
        assert plan.target_change.is_removal
        assert plan.apply(ordering) == {"d1": 1, "d2": 2, "d4": 3, "d5": 4}

    def test_remove_last_rank_shifts_nothing(self):
        plan = plan_remove(_ordering(3), "d3")

        assert plan.displaced == ()


@pytest.mark.unit
class TestDensity:
    """Any sequence of planned mutations keeps ranks dense."""

    def test_is_dense(self):
        assert is_dense([])
        assert is_dense([2, 1, 3])
        assert not is_dense([1, 3])
        assert not is_dense([1, 1, 2])

    def test_random_mutation_sequence_stays_dense(self):
        rng = random.Random(20241019)
        ordering: dict = {}
        next_id = 0

        for _ in range(300):
            action = rng.choice(["insert", "move", "remove"]) if ordering else "insert"
            if action == "insert":
                next_id += 1
                plan = plan_insert(ordering, f"x{next_id}", rng.randint(1, len(ordering) + 1))
            elif action == "move":
                dish = rng.choice(sorted(ordering))
                plan = plan_move(ordering, dish, rng.randint(1, len(ordering)))
            else:
                plan = plan_remove(ordering, rng.choice(sorted(ordering)))

            ordering = plan.apply(ordering)
            assert is_dense(ordering.values())
