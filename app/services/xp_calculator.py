"""
XP rewards for finished quizzes.

Multiplayer XP is the sum of five components:

- base        round(accuracy% x difficulty multiplier)
- speed       up to 50 for answering faster than 10 s on average
- perfect     100 for a flawless game
- streak      10 per consecutive win, capped at 100
- rank        podium bonus (multiplayer only)

Singleplayer practice uses a smaller, simpler formula so solo grinding
cannot outpace competitive play.
"""
from __future__ import annotations

import dataclasses
import math
from typing import Dict, List, Optional

from app.services.rank_system import calculate_level

DIFFICULTY_MULTIPLIERS: Dict[str, float] = {
    "easy": 1.0,
    "medium": 1.5,
    "hard": 2.0,
}

PERFECT_SCORE_BONUS = 100
MAX_SPEED_BONUS = 50
SPEED_BONUS_BASELINE_SECONDS = 10
STREAK_BONUS_PER_WIN = 10
MAX_STREAK_BONUS = 100
RANK_BONUSES: Dict[int, int] = {1: 200, 2: 150, 3: 100}
PARTICIPATION_RANK_BONUS = 50

# Singleplayer
SOLO_XP_PER_CORRECT = 10
SOLO_PERFECT_BONUS = 50
SOLO_ACCURACY_BONUS = 30


@dataclasses.dataclass
class XPBreakdown:
    base_xp: int
    speed_bonus: int
    perfect_score_bonus: int
    streak_bonus: int
    rank_bonus: int
    total_xp: int

    def as_dict(self) -> Dict[str, int]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class LevelUpInfo:
    leveled_up: bool
    old_level: int
    new_level: int
    levels_gained: int


def _round_half_up(value: float) -> int:
    """Round halves up: 2.5 -> 3, 94.5 -> 95."""
    return int(math.floor(value + 0.5))


def _difficulty_key(difficulty) -> str:
    value = getattr(difficulty, "value", difficulty)
    return str(value or "medium").lower()


def calculate_xp(
    accuracy: float,
    difficulty="medium",
    average_time: float = 30.0,
    win_streak: int = 0,
    rank: Optional[int] = None,
    is_multiplayer: bool = False,
) -> XPBreakdown:
    """
    Compute the XP breakdown for one player.

    Args:
        accuracy:      Fraction of correct answers, 0.0 - 1.0.
        difficulty:    "easy" / "medium" / "hard" (or the Difficulty enum).
        average_time:  Mean seconds per answered question.
        win_streak:    Consecutive wins *before* this game.
        rank:          Final placement; only used when ``is_multiplayer``.
    """
    accuracy = max(0.0, min(1.0, float(accuracy)))
    multiplier = DIFFICULTY_MULTIPLIERS.get(_difficulty_key(difficulty), 1.0)

    base_xp = _round_half_up(_round_half_up(accuracy * 100) * multiplier)

    speed_raw = MAX_SPEED_BONUS - (average_time - SPEED_BONUS_BASELINE_SECONDS) * 2
    speed_bonus = _round_half_up(max(0.0, min(float(MAX_SPEED_BONUS), speed_raw)))

    perfect_score_bonus = PERFECT_SCORE_BONUS if accuracy == 1.0 else 0
    streak_bonus = min(max(win_streak, 0) * STREAK_BONUS_PER_WIN, MAX_STREAK_BONUS)

    rank_bonus = 0
    if is_multiplayer and rank is not None:
        rank_bonus = RANK_BONUSES.get(rank, PARTICIPATION_RANK_BONUS)

    total = base_xp + speed_bonus + perfect_score_bonus + streak_bonus + rank_bonus
    return XPBreakdown(
        base_xp=base_xp,
        speed_bonus=speed_bonus,
        perfect_score_bonus=perfect_score_bonus,
        streak_bonus=streak_bonus,
        rank_bonus=rank_bonus,
        total_xp=total,
    )


def calculate_singleplayer_xp(correct_answers: int, total_questions: int) -> int:
    """correct x 10, plus 50 for a perfect run or up to 30 by accuracy."""
    if total_questions <= 0:
        return 0
    correct_answers = max(0, min(correct_answers, total_questions))
    xp = correct_answers * SOLO_XP_PER_CORRECT
    if correct_answers == total_questions:
        xp += SOLO_PERFECT_BONUS
    else:
        xp += _round_half_up(correct_answers / total_questions * SOLO_ACCURACY_BONUS)
    return xp


def get_xp_explanation(breakdown: XPBreakdown) -> List[str]:
    """Human-readable lines for the results screen."""
    lines = [f"Base XP: {breakdown.base_xp}"]
    if breakdown.speed_bonus > 0:
        lines.append(f"Speed Bonus: +{breakdown.speed_bonus}")
    if breakdown.perfect_score_bonus > 0:
        lines.append(f"Perfect Score: +{breakdown.perfect_score_bonus}")
    if breakdown.streak_bonus > 0:
        lines.append(f"Win Streak Bonus: +{breakdown.streak_bonus}")
    if breakdown.rank_bonus > 0:
        lines.append(f"Rank Bonus: +{breakdown.rank_bonus}")
    lines.append(f"Total: {breakdown.total_xp} XP")
    return lines


def check_level_up(old_xp: int, new_xp: int) -> LevelUpInfo:
    old_level = calculate_level(old_xp)
    new_level = calculate_level(new_xp)
    return LevelUpInfo(
        leveled_up=new_level > old_level,
        old_level=old_level,
        new_level=new_level,
        levels_gained=max(0, new_level - old_level),
    )
