"""
Subscription feature limits.

The tier itself lives on ``users.subscription_tier``; billing is handled
elsewhere. This module only answers "what may this user do?".
"""
from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database_models import Document, SubscriptionTier, User
from app.utils.helpers import utcnow


@dataclasses.dataclass(frozen=True)
class FeatureLimits:
    max_players_per_room: int
    can_create_clans: bool
    max_clans: int
    max_clan_members: int
    documents_per_month: Optional[int]  # None = unlimited
    questions_per_quiz: int

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


FREE_LIMITS = FeatureLimits(
    max_players_per_room=4,
    can_create_clans=False,
    max_clans=3,
    max_clan_members=50,
    documents_per_month=3,
    questions_per_quiz=8,
)

PRO_LIMITS = FeatureLimits(
    max_players_per_room=20,
    can_create_clans=True,
    max_clans=10,
    max_clan_members=50,
    documents_per_month=None,
    questions_per_quiz=50,
)


def is_pro(user: User) -> bool:
    tier = getattr(user.subscription_tier, "value", user.subscription_tier)
    return tier == SubscriptionTier.PRO.value


def get_feature_limits(user: User) -> FeatureLimits:
    return PRO_LIMITS if is_pro(user) else FREE_LIMITS


def pro_required(message: str) -> HTTPException:
    """403 whose detail tells the client to show the upgrade prompt."""
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": message, "requires_pro": True},
    )


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def count_documents_this_month(db: AsyncSession, user_id: str) -> int:
    start = _month_start(utcnow())
    result = await db.execute(
        select(func.count(Document.id)).where(
            Document.user_id == user_id,
            Document.created_at >= start,
        )
    )
    return result.scalar() or 0
