"""
Rank assignment for multiplayer results.

Players are ordered by score (highest first). Equal scores share a rank,
and a player's rank is one more than the number of distinct scores strictly
above theirs, so ``[90, 90, 80]`` ranks as ``[1, 1, 2]``.
"""
from __future__ import annotations

from typing import Callable, Dict, Hashable, List, Sequence, Tuple, TypeVar

T = TypeVar("T")


def rank_scores(scores: Sequence[float]) -> List[int]:
    """Return the rank of each score, positionally aligned with *scores*."""
    distinct_desc = sorted(set(scores), reverse=True)
    rank_of: Dict[float, int] = {score: i + 1 for i, score in enumerate(distinct_desc)}
    return [rank_of[score] for score in scores]


def assign_ranks(entries: Sequence[T], key: Callable[[T], float]) -> List[Tuple[int, T]]:
    """
    Rank *entries* by ``key(entry)`` descending.

    Returns ``(rank, entry)`` pairs sorted by rank. Tied entries keep their
    input order (``sorted`` is stable).
    """
    ordered = sorted(entries, key=key, reverse=True)
    ranks = rank_scores([key(entry) for entry in ordered])
    return list(zip(ranks, ordered))


def ranks_by_id(entries: Sequence[T], key: Callable[[T], float], id_of: Callable[[T], Hashable]) -> Dict[Hashable, int]:
    """Convenience mapping of ``id_of(entry) -> rank``."""
    return {id_of(entry): rank for rank, entry in assign_ranks(entries, key)}
