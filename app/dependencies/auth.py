"""
Authentication dependencies for FastAPI routes.

Extracts user identity from the X-User-Id header (set by the upstream
auth proxy). There is no anonymous mode: a missing header fails header
validation.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.database_models import (
    ClanMember,
    ClanRole,
    GameRoom,
    QuizSession,
    RoomMember,
    SubscriptionTier,
    User,
)

logger = logging.getLogger(__name__)


async def get_current_user_id(
    x_user_id: str = Header(..., alias="X-User-Id"),
) -> str:
    """Extract the authenticated user ID from the request header. Raises 401 if blank."""
    if not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header.",
        )
    return x_user_id.strip()


async def get_or_create_user(
    user_id: str = Depends(get_current_user_id),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Ensure the user exists in the local users table. Creates if needed."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            id=user_id,
            email=x_user_email or f"{user_id}@brainbattle.local",
            name=x_user_name,
            display_name=x_user_name,
            subscription_tier=SubscriptionTier.FREE,
        )
        db.add(user)
        await db.flush()
        logger.info("Created new user: id=%s email=%s", user_id, user.email)

    return user


async def get_member_room(
    room_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> GameRoom:
    """
    Verify that the current user is a member of the given room.
    Returns the GameRoom ORM object or raises 404.
    """
    result = await db.execute(
        select(GameRoom)
        .join(RoomMember, RoomMember.room_id == GameRoom.id)
        .where(
            GameRoom.id == room_id,
            RoomMember.user_id == user_id,
        )
    )
    room = result.scalar_one_or_none()

    if room is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Room {room_id} not found.",
        )

    return room


async def get_clan_role(db: AsyncSession, clan_id: int, user_id: str) -> Optional[ClanRole]:
    result = await db.execute(
        select(ClanMember.role).where(
            ClanMember.clan_id == clan_id,
            ClanMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def is_session_participant(db: AsyncSession, session: QuizSession, user_id: str) -> bool:
    """Room members for room sessions, clan members for clan sessions."""
    if session.room_id is not None:
        result = await db.execute(
            select(RoomMember.id).where(
                RoomMember.room_id == session.room_id,
                RoomMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none() is not None
    if session.clan_id is not None:
        return await get_clan_role(db, session.clan_id, user_id) is not None
    return session.created_by == user_id


async def can_manage_session(db: AsyncSession, session: QuizSession, user_id: str) -> bool:
    """The creator, the room host, or a clan owner/admin."""
    if session.created_by == user_id:
        return True
    if session.room_id is not None:
        result = await db.execute(select(GameRoom.host_id).where(GameRoom.id == session.room_id))
        return result.scalar_one_or_none() == user_id
    if session.clan_id is not None:
        role = await get_clan_role(db, session.clan_id, user_id)
        return role in (ClanRole.OWNER, ClanRole.ADMIN)
    return False


async def get_participant_session(
    session_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> QuizSession:
    """
    Return the session if the current user takes part in it; 404 otherwise
    so other users' sessions are indistinguishable from missing ones.
    """
    session = await db.get(QuizSession, session_id)
    if session is None or not await is_session_participant(db, session, user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found.",
        )
    return session
