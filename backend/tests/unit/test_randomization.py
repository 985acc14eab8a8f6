"""
Unit Tests for question randomization
"""
import random
from types import SimpleNamespace

import pytest

from app.services.randomization_service import (
    usage_weight,
    weighted_pick,
    weighted_sample,
    overlap_budget,
    select_from_pool,
)


def make_pool(count, prefix="q", usage=0):
    return [SimpleNamespace(id=f"{prefix}{i}", usage_count=usage) for i in range(count)]


class TestWeights:

    def test_unused_question_has_full_weight(self):
        assert usage_weight(0) == 1.0
        assert usage_weight(None) == 1.0

    def test_weight_decreases_with_usage(self):
        assert usage_weight(10) < usage_weight(1) < usage_weight(0)

    def test_weighted_pick_removes_choice(self):
        items = ["a", "b", "c"]

        picked = weighted_pick(items, lambda _: 1.0, random.Random(1))

        assert picked not in items
        assert len(items) == 2

    def test_zero_weight_items_are_never_picked_before_others(self):
        rng = random.Random(7)
        for _ in range(20):
            items = ["heavy", "zero"]
            assert weighted_pick(items, lambda x: 0.0 if x == "zero" else 1.0, rng) == "heavy"

    def test_weighted_sample_has_no_duplicates(self):
        sample = weighted_sample(list(range(10)), 6, lambda _: 1.0, random.Random(3))

        assert len(sample) == 6
        assert len(set(sample)) == 6

    def test_weighted_sample_caps_at_pool_size(self):
        assert len(weighted_sample([1, 2], 5, lambda _: 1.0, random.Random(3))) == 2


class TestOverlapBudget:

    @pytest.mark.parametrize("count,percentage,expected", [
        (10, 10, 1),
        (10, 0, 0),
        (9, 10, 0),
        (20, 25, 5),
        (10, None, 0),
    ])
    def test_budget_is_floored(self, count, percentage, expected):
        assert overlap_budget(count, percentage) == expected


class TestSelectFromPool:

    def test_prefers_fresh_questions_within_budget(self):
        fresh = make_pool(5, prefix="new")
        seen = make_pool(5, prefix="old")
        seen_ids = {q.id for q in seen}

        selected = select_from_pool(fresh + seen, 5, seen_ids, seen_budget=1, rng=random.Random(11))

        assert len(selected) == 5
        assert sum(1 for q in selected if q.id in seen_ids) <= 1

    def test_tops_up_from_seen_when_fresh_runs_out(self):
        fresh = make_pool(2, prefix="new")
        seen = make_pool(4, prefix="old")
        seen_ids = {q.id for q in seen}

        selected = select_from_pool(fresh + seen, 5, seen_ids, seen_budget=0, rng=random.Random(5))

        assert len(selected) == 5
        assert {q.id for q in fresh} <= {q.id for q in selected}
        assert len({q.id for q in selected}) == 5

    def test_returns_fewer_when_pool_is_small(self):
        selected = select_from_pool(make_pool(3), 10, set(), seen_budget=0, rng=random.Random(2))

        assert len(selected) == 3

    def test_same_seed_same_selection(self):
        pool = make_pool(20)

        first = select_from_pool(pool, 5, set(), 0, random.Random(42))
        second = select_from_pool(pool, 5, set(), 0, random.Random(42))

        assert [q.id for q in first] == [q.id for q in second]
