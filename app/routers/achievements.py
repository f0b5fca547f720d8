"""
Achievement catalogue and unlock endpoints.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_or_create_user
from app.models.database_models import AchievementDefinition, User, UserAchievement
from app.models.schemas import (
    AchievementCheckResponse,
    AchievementResponse,
    UnlockedAchievementResponse,
)
from app.services.achievements import check_achievements, seed_achievement_definitions
from app.services.player_stats import get_or_create_stats

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[AchievementResponse])
async def list_achievements(
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> List[AchievementResponse]:
    """Every active achievement with the caller's unlock state."""
    await seed_achievement_definitions(db)

    defs_result = await db.execute(
        select(AchievementDefinition)
        .where(AchievementDefinition.is_active.is_(True))
        .order_by(AchievementDefinition.id)
    )
    owned_result = await db.execute(
        select(UserAchievement).where(UserAchievement.user_id == user.id)
    )
    owned = {a.achievement_code: a for a in owned_result.scalars().all()}

    responses: List[AchievementResponse] = []
    for definition in defs_result.scalars().all():
        unlocked = owned.get(definition.code)
        responses.append(AchievementResponse(
            code=definition.code,
            name=definition.name,
            description=definition.description,
            icon=definition.icon,
            category=definition.category,
            rarity=definition.rarity,
            xp_reward=definition.xp_reward,
            requirement_type=definition.requirement_type,
            requirement_value=definition.requirement_value or {},
            unlocked=unlocked is not None,
            unlocked_at=unlocked.unlocked_at if unlocked else None,
            progress=unlocked.progress if unlocked else None,
        ))
    return responses


@router.post("/check", response_model=AchievementCheckResponse)
async def check_my_achievements(
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> AchievementCheckResponse:
    """Unlock everything the caller now qualifies for and award its XP."""
    unlocked = await check_achievements(db, user)
    stats = await get_or_create_stats(db, user.id)
    return AchievementCheckResponse(
        newly_unlocked=[
            UnlockedAchievementResponse(
                code=a.code,
                name=a.name,
                description=a.description,
                icon=a.icon,
                rarity=a.rarity,
                xp_reward=a.xp_reward,
                progress=a.progress,
            )
            for a in unlocked
        ],
        xp_awarded=sum(a.xp_reward for a in unlocked),
        total_xp=stats.xp,
    )
