"""
Current-user profile and subscription limits.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_or_create_user
from app.models.database_models import User
from app.models.schemas import FeatureLimitsResponse, UserProfileResponse, UserUpdateRequest
from app.services.subscription import get_feature_limits
from app.utils.helpers import enum_value

logger = logging.getLogger(__name__)

router = APIRouter()


def _profile(user: User) -> UserProfileResponse:
    return UserProfileResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        display_name=user.display_name,
        subscription_tier=enum_value(user.subscription_tier),
        created_at=user.created_at,
    )


@router.get("/me", response_model=UserProfileResponse)
async def get_me(user: User = Depends(get_or_create_user)) -> UserProfileResponse:
    return _profile(user)


@router.patch("/me", response_model=UserProfileResponse)
async def update_me(
    body: UserUpdateRequest,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> UserProfileResponse:
    """Change the caller's display name."""
    display_name = body.display_name.strip()
    if not display_name:
        raise HTTPException(status_code=400, detail="Display name cannot be blank.")
    user.display_name = display_name
    await db.flush()
    logger.info("User %s set display_name=%r", user.id, user.display_name)
    return _profile(user)


@router.get("/me/limits", response_model=FeatureLimitsResponse)
async def get_my_limits(user: User = Depends(get_or_create_user)) -> FeatureLimitsResponse:
    """What the caller's subscription tier allows."""
    return FeatureLimitsResponse(
        tier=enum_value(user.subscription_tier),
        **get_feature_limits(user).as_dict(),
    )
