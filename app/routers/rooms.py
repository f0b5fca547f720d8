"""
Multiplayer room endpoints.

Route summary
-------------
POST   /api/rooms                  create room (host joins as ready member)
GET    /api/rooms                  rooms the caller belongs to
GET    /api/rooms/public           open public rooms
GET    /api/rooms/{room_id}        room detail with members
POST   /api/rooms/join             join by 6-character code
POST   /api/rooms/{room_id}/leave  leave a room (non-host)
DELETE /api/rooms/{room_id}        delete room (host only, cascades)
"""
import logging
from typing import Dict, List, Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_user_id, get_member_room, get_or_create_user
from app.models.database_models import Difficulty, GameRoom, RoomMember, RoomStatus, User
from app.models.schemas import (
    MessageResponse,
    RoomCreateRequest,
    RoomJoinRequest,
    RoomJoinResponse,
    RoomMemberResponse,
    RoomResponse,
)
from app.services.player_stats import get_display_names
from app.services.subscription import FREE_LIMITS, get_feature_limits, is_pro, pro_required
from app.utils.helpers import enum_value, generate_room_code

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_CODE_ATTEMPTS = 10


# ─── Helpers ──────────────────────────────────────────────────────────────────

async def _unique_room_code(db: AsyncSession) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_room_code()
        taken = await db.execute(select(GameRoom.id).where(GameRoom.room_code == code))
        if taken.scalar_one_or_none() is None:
            return code
    raise HTTPException(status_code=500, detail="Could not allocate a unique room code.")


async def _room_responses(db: AsyncSession, rooms: Sequence[GameRoom]) -> List[RoomResponse]:
    """Build responses with members for a batch of rooms."""
    room_ids = [r.id for r in rooms]
    members_by_room: Dict[int, List[RoomMember]] = {rid: [] for rid in room_ids}
    if room_ids:
        members_result = await db.execute(
            select(RoomMember)
            .where(RoomMember.room_id.in_(room_ids))
            .order_by(RoomMember.joined_at, RoomMember.id)
        )
        for member in members_result.scalars().all():
            members_by_room[member.room_id].append(member)

    names = await get_display_names(
        db, {m.user_id for members in members_by_room.values() for m in members}
    )

    return [
        RoomResponse(
            id=room.id,
            room_code=room.room_code,
            name=room.name,
            host_id=room.host_id,
            max_players=room.max_players,
            current_players=room.current_players,
            difficulty=room.difficulty,
            is_private=room.is_private,
            time_limit=room.time_limit,
            total_questions=room.total_questions,
            topic=room.topic,
            status=enum_value(room.status),
            created_at=room.created_at,
            members=[
                RoomMemberResponse(
                    user_id=m.user_id,
                    display_name=names.get(m.user_id),
                    is_ready=m.is_ready,
                    is_host=m.user_id == room.host_id,
                    joined_at=m.joined_at,
                )
                for m in members_by_room[room.id]
            ],
        )
        for room in rooms
    ]


async def _room_response(db: AsyncSession, room: GameRoom) -> RoomResponse:
    return (await _room_responses(db, [room]))[0]


# ═══════════════════════════════════════════════════════════════════════════════
# ROOM CRUD
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    body: RoomCreateRequest,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> RoomResponse:
    """Create a new room; the caller becomes its host and first ready member."""
    limits = get_feature_limits(user)
    if body.max_players > limits.max_players_per_room:
        raise pro_required(
            f"Free accounts can host rooms of up to {limits.max_players_per_room} players. "
            "Upgrade to Pro for larger rooms."
        )

    room = GameRoom(
        room_code=await _unique_room_code(db),
        name=body.name,
        host_id=user.id,
        max_players=body.max_players,
        current_players=1,
        difficulty=Difficulty(body.difficulty.value),
        is_private=body.is_private,
        time_limit=body.time_limit,
        total_questions=body.total_questions,
        topic=body.topic,
        status=RoomStatus.WAITING,
    )
    db.add(room)
    await db.flush()

    try:
        db.add(RoomMember(room_id=room.id, user_id=user.id, is_ready=True))
        await db.flush()
    except IntegrityError as exc:
        # Rolling back discards the room row as well
        await db.rollback()
        logger.error("Could not add host %s to new room: %s", user.id, exc)
        raise HTTPException(status_code=500, detail="Failed to add host to room.")

    logger.info("Created room id=%d code=%s for host=%s", room.id, room.room_code, user.id)
    return await _room_response(db, room)


@router.get("", response_model=List[RoomResponse])
async def list_rooms(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[RoomResponse]:
    """List all rooms the authenticated user is a member of, newest first."""
    result = await db.execute(
        select(GameRoom)
        .join(RoomMember, RoomMember.room_id == GameRoom.id)
        .where(RoomMember.user_id == user_id)
        .order_by(GameRoom.created_at.desc(), GameRoom.id.desc())
    )
    return await _room_responses(db, result.scalars().all())


@router.get("/public", response_model=List[RoomResponse])
async def list_public_rooms(
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[RoomResponse]:
    """Public rooms still waiting for players and not yet full."""
    result = await db.execute(
        select(GameRoom)
        .where(
            GameRoom.is_private.is_(False),
            GameRoom.status == RoomStatus.WAITING,
            GameRoom.current_players < GameRoom.max_players,
        )
        .order_by(GameRoom.created_at.desc(), GameRoom.id.desc())
        .limit(limit)
    )
    return await _room_responses(db, result.scalars().all())


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room(
    room: GameRoom = Depends(get_member_room),
    db: AsyncSession = Depends(get_db),
) -> RoomResponse:
    """Get room details."""
    return await _room_response(db, room)


@router.delete(
    "/{room_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
async def delete_room(
    room_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Delete a room and all its sessions. Host only."""
    result = await db.execute(
        select(GameRoom).where(GameRoom.id == room_id, GameRoom.host_id == user_id)
    )
    room = result.scalar_one_or_none()
    if room is None:
        raise HTTPException(status_code=404, detail=f"Room {room_id} not found.")

    await db.delete(room)
    await db.flush()
    logger.info("Deleted room id=%d code=%s", room.id, room.room_code)


# ═══════════════════════════════════════════════════════════════════════════════
# MEMBERSHIP
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("/join", response_model=RoomJoinResponse)
async def join_room(
    body: RoomJoinRequest,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> RoomJoinResponse:
    """
    Join a room by code.

    The seat is claimed with a conditional UPDATE so concurrent joins can
    never push current_players past max_players.
    """
    code = body.room_code.strip().upper()
    result = await db.execute(select(GameRoom).where(GameRoom.room_code == code))
    room = result.scalar_one_or_none()
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found.")

    existing = await db.execute(
        select(RoomMember.id).where(RoomMember.room_id == room.id, RoomMember.user_id == user.id)
    )
    if existing.scalar_one_or_none() is not None:
        return RoomJoinResponse(
            message="User is already a member",
            room=await _room_response(db, room),
        )

    if room.max_players > FREE_LIMITS.max_players_per_room and not is_pro(user):
        raise pro_required(
            f"This room allows {room.max_players} players. "
            "Upgrade to Pro to join rooms larger than "
            f"{FREE_LIMITS.max_players_per_room} players."
        )

    if room.current_players >= room.max_players:
        raise HTTPException(status_code=403, detail="Room is full")

    member = RoomMember(room_id=room.id, user_id=user.id, is_ready=False)
    db.add(member)
    await db.flush()

    claimed = await db.execute(
        update(GameRoom)
        .where(GameRoom.id == room.id, GameRoom.current_players < GameRoom.max_players)
        .values(current_players=GameRoom.current_players + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        await db.delete(member)
        await db.flush()
        logger.info("Join rejected, room id=%d filled concurrently (user=%s)", room.id, user.id)
        raise HTTPException(status_code=403, detail="Room is full")

    await db.refresh(room)
    logger.info(
        "User %s joined room id=%d (%d/%d)", user.id, room.id, room.current_players, room.max_players
    )
    return RoomJoinResponse(
        message="Joined room successfully",
        room=await _room_response(db, room),
    )


@router.post("/{room_id}/leave", response_model=MessageResponse)
async def leave_room(
    room: GameRoom = Depends(get_member_room),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Leave a room. The host must delete the room instead."""
    if room.host_id == user_id:
        raise HTTPException(
            status_code=400,
            detail="The host cannot leave the room. Delete the room instead.",
        )

    result = await db.execute(
        select(RoomMember).where(RoomMember.room_id == room.id, RoomMember.user_id == user_id)
    )
    member = result.scalar_one()
    await db.delete(member)
    await db.execute(
        update(GameRoom)
        .where(GameRoom.id == room.id, GameRoom.current_players > 0)
        .values(current_players=GameRoom.current_players - 1)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    logger.info("User %s left room id=%d", user_id, room.id)
    return MessageResponse(message="Left room successfully")
