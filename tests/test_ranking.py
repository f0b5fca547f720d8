"""Tests for tie-aware rank assignment."""
import random

import pytest

from app.services.ranking import assign_ranks, rank_scores, ranks_by_id


def test_equal_scores_share_rank():
    assert rank_scores([90, 90, 80]) == [1, 1, 2]


def test_ranks_follow_input_positions():
    assert rank_scores([50, 100, 75, 100]) == [3, 1, 2, 1]


def test_single_and_empty():
    assert rank_scores([42]) == [1]
    assert rank_scores([]) == []


def test_all_tied():
    assert rank_scores([0, 0, 0]) == [1, 1, 1]


def test_assign_ranks_sorts_and_keeps_tie_order():
    players = [("amy", 70), ("bob", 95), ("cat", 95), ("dan", 10)]
    ranked = assign_ranks(players, key=lambda p: p[1])
    assert [(rank, name) for rank, (name, _) in ranked] == [
        (1, "bob"),
        (1, "cat"),
        (2, "amy"),
        (3, "dan"),
    ]


def test_ranks_by_id():
    players = [{"id": "a", "score": 10.5}, {"id": "b", "score": 33.3}, {"id": "c", "score": 10.5}]
    ranks = ranks_by_id(players, key=lambda p: p["score"], id_of=lambda p: p["id"])
    assert ranks == {"b": 1, "a": 2, "c": 2}


@pytest.mark.parametrize("seed", range(20))
def test_rank_is_one_plus_distinct_higher_scores(seed):
    rng = random.Random(seed)
    for _ in range(50):
        # Narrow score range so ties are common
        scores = [rng.randint(0, 10) * 10 for _ in range(rng.randint(0, 12))]
        ranks = rank_scores(scores)
        assert len(ranks) == len(scores)
        for score, rank in zip(scores, ranks):
            assert rank == 1 + len({s for s in scores if s > score})


@pytest.mark.parametrize("seed", range(5))
def test_assign_ranks_matches_rank_scores(seed):
    rng = random.Random(seed)
    players = [(f"p{i}", rng.choice([0.0, 12.5, 50.0, 87.5, 100.0])) for i in range(rng.randint(1, 10))]
    ranked = assign_ranks(players, key=lambda p: p[1])
    scores = [score for _, score in players]
    for rank, (_, score) in ranked:
        assert rank == 1 + len({s for s in scores if s > score})
    assert [rank for rank, _ in ranked] == sorted(rank for rank, _ in ranked)
