"""
Daily study streak.

A streak counts consecutive activity days walking back from today. One
missed day is forgiven (a gap of up to two days keeps the streak alive).
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database_models import GameResult
from app.services.player_stats import get_or_create_stats
from app.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

GRACE_DAYS = 2


@dataclasses.dataclass
class StreakInfo:
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date]
    is_active_today: bool
    days_until_break: int


def calculate_streak(activity_dates: Iterable[date], today: date) -> int:
    """Count the current streak from a collection of activity dates."""
    unique_desc: List[date] = sorted({d for d in activity_dates if d <= today}, reverse=True)
    if not unique_desc:
        return 0
    if (today - unique_desc[0]).days > GRACE_DAYS:
        return 0

    streak = 1
    previous = unique_desc[0]
    for current in unique_desc[1:]:
        if (previous - current).days > GRACE_DAYS:
            break
        streak += 1
        previous = current
    return streak


def build_streak_info(
    activity_dates: Iterable[date],
    today: date,
    stored_longest: int = 0,
) -> StreakInfo:
    dates = list(activity_dates)
    current = calculate_streak(dates, today)
    last = max((d for d in dates if d <= today), default=None)
    days_since = (today - last).days if last else None
    return StreakInfo(
        current_streak=current,
        longest_streak=max(stored_longest or 0, current),
        last_activity_date=last,
        is_active_today=last == today,
        days_until_break=max(0, GRACE_DAYS - days_since) if days_since is not None and current else 0,
    )


async def get_activity_dates(db: AsyncSession, user_id: str) -> List[date]:
    result = await db.execute(
        select(GameResult.completed_at).where(GameResult.user_id == user_id)
    )
    dates = set()
    for (completed_at,) in result.all():
        if isinstance(completed_at, datetime):
            dates.add(as_utc(completed_at).date())
    return sorted(dates)


async def refresh_user_streak(db: AsyncSession, user_id: str, today: Optional[date] = None) -> StreakInfo:
    """Recompute the streak from game results and persist it on player_stats."""
    today = today or utcnow().date()
    stats = await get_or_create_stats(db, user_id)
    dates = await get_activity_dates(db, user_id)
    info = build_streak_info(dates, today, stored_longest=stats.longest_streak or 0)

    stats.daily_streak = info.current_streak
    stats.longest_streak = info.longest_streak
    stats.last_activity_date = info.last_activity_date
    await db.flush()

    logger.debug(
        "Streak for user=%s: current=%d longest=%d", user_id, info.current_streak, info.longest_streak
    )
    return info
