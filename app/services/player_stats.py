"""
Player stats bookkeeping shared by the results, stats and achievements
routers.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database_models import PlayerStats, User
from app.services.rank_system import calculate_level
from app.utils.helpers import safe_divide

logger = logging.getLogger(__name__)


async def get_or_create_stats(db: AsyncSession, user_id: str) -> PlayerStats:
    """Fetch the user's stats row, creating a zeroed one if missing."""
    result = await db.execute(select(PlayerStats).where(PlayerStats.user_id == user_id))
    stats = result.scalar_one_or_none()
    if stats is None:
        stats = PlayerStats(
            user_id=user_id,
            xp=0,
            level=1,
            total_games=0,
            total_wins=0,
            total_losses=0,
            win_streak=0,
            best_streak=0,
            total_questions_answered=0,
            correct_answers=0,
            accuracy=0.0,
            daily_streak=0,
            longest_streak=0,
        )
        db.add(stats)
        await db.flush()
        logger.info("Created initial player stats for user=%s", user_id)
    return stats


async def get_stats_map(db: AsyncSession, user_ids: Iterable[str]) -> Dict[str, PlayerStats]:
    ids: List[str] = list(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(PlayerStats).where(PlayerStats.user_id.in_(ids)))
    return {s.user_id: s for s in result.scalars().all()}


def add_xp(stats: PlayerStats, xp: int) -> None:
    stats.xp = (stats.xp or 0) + xp
    stats.level = calculate_level(stats.xp)


def record_answers(stats: PlayerStats, answered: int, correct: int) -> None:
    """Accumulate question totals and recompute lifetime accuracy (0-100)."""
    stats.total_questions_answered = (stats.total_questions_answered or 0) + answered
    stats.correct_answers = (stats.correct_answers or 0) + correct
    stats.accuracy = round(
        safe_divide(stats.correct_answers, stats.total_questions_answered) * 100, 2
    )


def record_multiplayer_game(stats: PlayerStats, won: bool) -> None:
    """Count one finished battle; a win extends the streak, a loss resets it."""
    stats.total_games = (stats.total_games or 0) + 1
    if won:
        stats.total_wins = (stats.total_wins or 0) + 1
        stats.win_streak = (stats.win_streak or 0) + 1
        stats.best_streak = max(stats.best_streak or 0, stats.win_streak)
    else:
        stats.total_losses = (stats.total_losses or 0) + 1
        stats.win_streak = 0


async def get_display_names(db: AsyncSession, user_ids: Iterable[str]) -> Dict[str, str]:
    """display_name, falling back to name, email and finally the id."""
    ids: List[str] = list(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    names = {u.id: u.display_name or u.name or u.email for u in result.scalars().all()}
    return {uid: names.get(uid) or uid for uid in ids}
