"""
Player stats, leaderboard, daily streak and rank endpoints.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_user_id, get_or_create_user
from app.models.database_models import PlayerStats, User
from app.models.schemas import (
    LeaderboardEntry,
    PlayerStatsResponse,
    RankInfoResponse,
    StreakResponse,
)
from app.services.player_stats import get_display_names, get_or_create_stats
from app.services.rank_system import get_rank, get_rank_info
from app.services.streak import refresh_user_streak

logger = logging.getLogger(__name__)

router = APIRouter()

LEADERBOARD_PREVIEW_SIZE = 5


async def _leaderboard(db: AsyncSession, limit: int) -> List[LeaderboardEntry]:
    result = await db.execute(
        select(PlayerStats)
        .order_by(PlayerStats.xp.desc(), PlayerStats.total_games.desc(), PlayerStats.id)
        .limit(limit)
    )
    rows = result.scalars().all()
    names = await get_display_names(db, [s.user_id for s in rows])
    return [
        LeaderboardEntry(
            rank=position + 1,
            user_id=s.user_id,
            display_name=names.get(s.user_id),
            xp=s.xp,
            level=s.level,
            total_games=s.total_games,
            total_wins=s.total_wins,
            accuracy=s.accuracy,
            rank_name=get_rank(s.xp).name,
        )
        for position, s in enumerate(rows)
    ]


@router.get("/me", response_model=PlayerStatsResponse)
async def get_my_stats(
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> PlayerStatsResponse:
    """The caller's stats (zeroed row created on first access) plus rank info."""
    stats = await get_or_create_stats(db, user.id)
    response = PlayerStatsResponse.model_validate(stats)
    response.rank_info = RankInfoResponse(**get_rank_info(stats.xp))
    return response


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[LeaderboardEntry]:
    """Top players by XP, ties broken by games played."""
    return await _leaderboard(db, limit)


@router.get("/leaderboard/preview", response_model=List[LeaderboardEntry])
async def get_leaderboard_preview(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[LeaderboardEntry]:
    return await _leaderboard(db, LEADERBOARD_PREVIEW_SIZE)


@router.get("/streak", response_model=StreakResponse)
async def get_streak(
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> StreakResponse:
    """Recompute the daily streak from game history and persist it."""
    info = await refresh_user_streak(db, user.id)
    return StreakResponse(
        current_streak=info.current_streak,
        longest_streak=info.longest_streak,
        last_activity_date=info.last_activity_date,
        is_active_today=info.is_active_today,
        days_until_break=info.days_until_break,
    )


@router.get("/rank", response_model=RankInfoResponse)
async def get_my_rank(
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> RankInfoResponse:
    stats = await get_or_create_stats(db, user.id)
    return RankInfoResponse(**get_rank_info(stats.xp))
