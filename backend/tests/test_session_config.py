import random
from datetime import datetime, timedelta

import pytest

from adaptlearn.errors import NoQuestionsAvailable
from adaptlearn.session_config import (
    build_deadline,
    build_session,
    normalize_options,
    question_count_options,
)
from conftest import make_questions


@pytest.mark.parametrize(
    "pool_size, expected",
    [
        (0, ["all"]),
        (3, ["all"]),
        (5, ["5", "all"]),
        (12, ["5", "10", "all"]),
        (20, ["5", "10", "15", "20", "all"]),
        (40, ["5", "10", "15", "20", "all"]),
    ],
)
def test_question_count_options(pool_size, expected):
    assert question_count_options(pool_size) == expected


def test_all_keeps_original_order():
    pool = make_questions(10)
    session = build_session(pool, "all")
    assert [q.id for q in session] == [q.id for q in pool]


def test_subset_is_distinct_members_of_pool():
    pool = make_questions(20)
    ids = {q.id for q in pool}
    for seed in range(25):
        session = build_session(pool, 5, random.Random(seed))
        assert len(session) == 5
        assert len({q.id for q in session}) == 5
        assert {q.id for q in session} <= ids


def test_subset_order_is_randomized():
    pool = make_questions(20)
    original = [q.id for q in pool[:5]]
    orders = {tuple(q.id for q in build_session(pool, 5, random.Random(seed))) for seed in range(20)}
    assert len(orders) > 1
    assert any(list(order) != original for order in orders)


def test_count_larger_than_pool_is_clamped():
    pool = make_questions(7)
    session = build_session(pool, 20, random.Random(1))
    assert len(session) == 7
    assert {q.id for q in session} == {q.id for q in pool}


def test_numeric_string_count_is_accepted():
    assert len(build_session(make_questions(12), "10", random.Random(3))) == 10


def test_empty_pool_cannot_start():
    with pytest.raises(NoQuestionsAvailable):
        build_session([], "all")


def test_shuffle_is_unbiased_enough():
    # Each question should lead roughly equally often over many shuffles
    pool = make_questions(4)
    rng = random.Random(42)
    firsts = {q.id: 0 for q in pool}
    for _ in range(4000):
        firsts[build_session(pool, 4, rng)[0].id] += 1
    for count in firsts.values():
        assert 800 < count < 1200


def test_deadline():
    start = datetime(2026, 1, 1, 12, 0, 0)
    assert build_deadline(start, False, 10) is None
    assert build_deadline(start, True, 1) == start + timedelta(seconds=60)
    with pytest.raises(ValueError):
        build_deadline(start, True, 0)


def test_normalize_options():
    assert normalize_options(["a", 2, None]) == ["a", "2", "None"]
    assert normalize_options('["x", "y"]') == ["x", "y"]
    assert normalize_options("not json") == []
    assert normalize_options('{"a": 1}') == []
    assert normalize_options(None) == []
    assert normalize_options({"a": 1}) == []
