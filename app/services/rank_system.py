"""
Rank tiers and level arithmetic.

Levels are flat 1000-XP steps (level = xp // 1000 + 1). Ranks are coarse
tiers over the same XP axis, from Bronze to Master.
"""
from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Optional

XP_PER_LEVEL = 1000


@dataclasses.dataclass(frozen=True)
class RankTier:
    name: str
    min_xp: int
    max_xp: Optional[int]  # inclusive; None for the top tier
    description: str
    color: str


RANK_TIERS: List[RankTier] = [
    RankTier("Bronze", 0, 9_999, "Just getting started on the path to knowledge", "#CD7F32"),
    RankTier("Silver", 10_000, 24_999, "Building a solid foundation", "#C0C0C0"),
    RankTier("Gold", 25_000, 49_999, "A dedicated and skilled learner", "#FFD700"),
    RankTier("Platinum", 50_000, 74_999, "An expert among scholars", "#E5E4E2"),
    RankTier("Diamond", 75_000, 99_999, "Elite mastery of many subjects", "#B9F2FF"),
    RankTier("Master", 100_000, None, "The pinnacle of Brain Battle", "#9B59B6"),
]


def calculate_level(xp: int) -> int:
    return max(0, xp) // XP_PER_LEVEL + 1


def xp_for_next_level(xp: int) -> int:
    """XP still needed to reach the next level."""
    return calculate_level(xp) * XP_PER_LEVEL - max(0, xp)


def level_progress(xp: int) -> float:
    """Percentage (0-100) through the current level."""
    into_level = max(0, xp) % XP_PER_LEVEL
    return round(max(0.0, min(100.0, into_level / XP_PER_LEVEL * 100)), 2)


def get_rank(xp: int) -> RankTier:
    xp = max(0, xp)
    for tier in reversed(RANK_TIERS):
        if xp >= tier.min_xp:
            return tier
    return RANK_TIERS[0]


def get_next_rank(xp: int) -> Optional[RankTier]:
    current = get_rank(xp)
    index = RANK_TIERS.index(current)
    if index + 1 < len(RANK_TIERS):
        return RANK_TIERS[index + 1]
    return None


def rank_progress(xp: int) -> float:
    """Percentage (0-100) through the current rank tier; 100 at the top."""
    current = get_rank(xp)
    nxt = get_next_rank(xp)
    if nxt is None:
        return 100.0
    span = nxt.min_xp - current.min_xp
    pct = (max(0, xp) - current.min_xp) / span * 100
    return round(max(0.0, min(100.0, pct)), 2)


def format_xp(xp: int) -> str:
    """Compact XP label: 950, 12.5K, 1.2M."""
    if xp >= 1_000_000:
        return f"{xp / 1_000_000:.1f}M"
    if xp >= 1_000:
        return f"{xp / 1_000:.1f}K"
    return str(xp)


def get_rank_title(xp: int) -> str:
    return f"{get_rank(xp).name} Scholar (Level {calculate_level(xp)})"


def get_rank_info(xp: int) -> Dict[str, Any]:
    """Everything the dashboard needs to render a player's rank badge."""
    current = get_rank(xp)
    nxt = get_next_rank(xp)
    return {
        "xp": xp,
        "formatted_xp": format_xp(xp),
        "level": calculate_level(xp),
        "xp_to_next_level": xp_for_next_level(xp),
        "level_progress": level_progress(xp),
        "rank": current.name,
        "rank_description": current.description,
        "rank_color": current.color,
        "rank_progress": rank_progress(xp),
        "next_rank": nxt.name if nxt else None,
        "xp_to_next_rank": (nxt.min_xp - max(0, xp)) if nxt else 0,
        "title": get_rank_title(xp),
    }
