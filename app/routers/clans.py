"""
Clan endpoints.

Clans are persistent classroom-style groups. Creating one is a Pro
feature; joining is open to everyone up to the tier's clan limit.

Route summary
-------------
POST /api/clans                        create clan (Pro)
GET  /api/clans                        caller's clans
POST /api/clans/join                   join by 8-character code
POST /api/clans/{clan_id}/leave        leave (owner cannot)
GET  /api/clans/{clan_id}/members      members with stats
GET  /api/clans/{clan_id}/stats        leaderboard and totals
POST /api/clans/{clan_id}/sessions     schedule a clan quiz (owner/admin)
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_clan_role, get_current_user_id, get_or_create_user
from app.models.database_models import (
    Clan,
    ClanMember,
    ClanRole,
    Difficulty,
    QuizSession,
    SessionStatus,
    User,
)
from app.models.schemas import (
    ClanCreateRequest,
    ClanJoinRequest,
    ClanJoinResponse,
    ClanLeaderboardEntry,
    ClanMemberResponse,
    ClanResponse,
    ClanSessionCreateRequest,
    ClanStatsResponse,
    MessageResponse,
    SessionResponse,
)
from app.routers.sessions import session_response
from app.services.player_stats import get_display_names, get_stats_map
from app.services.subscription import get_feature_limits, pro_required
from app.utils.helpers import enum_value, generate_clan_code

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_CODE_ATTEMPTS = 10


# ─── Helpers ──────────────────────────────────────────────────────────────────

async def _unique_clan_code(db: AsyncSession) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_clan_code()
        taken = await db.execute(select(Clan.id).where(Clan.clan_code == code))
        if taken.scalar_one_or_none() is None:
            return code
    raise HTTPException(status_code=500, detail="Could not allocate a unique clan code.")


async def _membership_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(select(func.count(ClanMember.id)).where(ClanMember.user_id == user_id))
    return result.scalar() or 0


async def _member_counts(db: AsyncSession, clan_ids: Sequence[int]) -> Dict[int, int]:
    if not clan_ids:
        return {}
    result = await db.execute(
        select(ClanMember.clan_id, func.count(ClanMember.id).label("cnt"))
        .where(ClanMember.clan_id.in_(clan_ids))
        .group_by(ClanMember.clan_id)
    )
    return {row.clan_id: row.cnt for row in result}


def _clan_response(clan: Clan, member_count: int, membership: Optional[ClanMember]) -> ClanResponse:
    return ClanResponse(
        id=clan.id,
        name=clan.name,
        description=clan.description,
        clan_code=clan.clan_code,
        owner_id=clan.owner_id,
        is_private=clan.is_private,
        max_members=clan.max_members,
        member_count=member_count,
        role=enum_value(membership.role) if membership else None,
        is_owner=membership is not None and membership.user_id == clan.owner_id,
        joined_at=membership.joined_at if membership else None,
        created_at=clan.created_at,
    )


async def _get_visible_clan(db: AsyncSession, clan_id: int, user_id: str) -> Clan:
    """404 when the clan is missing, 403 when the caller is not a member."""
    clan = await db.get(Clan, clan_id)
    if clan is None:
        raise HTTPException(status_code=404, detail=f"Clan {clan_id} not found.")
    if await get_clan_role(db, clan_id, user_id) is None:
        raise HTTPException(status_code=403, detail="You are not a member of this clan.")
    return clan


async def _members_with_stats(db: AsyncSession, clan_id: int) -> List[ClanMemberResponse]:
    result = await db.execute(
        select(ClanMember).where(ClanMember.clan_id == clan_id).order_by(ClanMember.joined_at, ClanMember.id)
    )
    members = result.scalars().all()
    user_ids = [m.user_id for m in members]
    stats = await get_stats_map(db, user_ids)
    names = await get_display_names(db, user_ids)

    responses: List[ClanMemberResponse] = []
    for m in members:
        s = stats.get(m.user_id)
        responses.append(ClanMemberResponse(
            user_id=m.user_id,
            display_name=names.get(m.user_id),
            role=enum_value(m.role),
            joined_at=m.joined_at,
            xp=s.xp if s else 0,
            level=s.level if s else 1,
            total_wins=s.total_wins if s else 0,
            total_games=s.total_games if s else 0,
            accuracy=s.accuracy if s else 0.0,
        ))
    return responses


# ═══════════════════════════════════════════════════════════════════════════════
# CLAN CRUD / MEMBERSHIP
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("", response_model=ClanResponse, status_code=status.HTTP_201_CREATED)
async def create_clan(
    body: ClanCreateRequest,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> ClanResponse:
    """Create a clan; the caller becomes its owner."""
    limits = get_feature_limits(user)
    if not limits.can_create_clans:
        raise pro_required("Creating clans is a Pro feature. Upgrade to Pro to create a clan.")

    if await _membership_count(db, user.id) >= limits.max_clans:
        raise HTTPException(
            status_code=403,
            detail=f"You have reached the maximum of {limits.max_clans} clans.",
        )

    clan = Clan(
        name=body.name,
        description=body.description,
        clan_code=await _unique_clan_code(db),
        owner_id=user.id,
        is_private=body.is_private,
        max_members=min(body.max_members, limits.max_clan_members),
    )
    db.add(clan)
    await db.flush()

    owner = ClanMember(clan_id=clan.id, user_id=user.id, role=ClanRole.OWNER)
    db.add(owner)
    await db.flush()

    logger.info("Created clan id=%d code=%s owner=%s", clan.id, clan.clan_code, user.id)
    return _clan_response(clan, 1, owner)


@router.get("", response_model=List[ClanResponse])
async def list_my_clans(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[ClanResponse]:
    """Clans the caller belongs to, most recently joined first."""
    result = await db.execute(
        select(Clan, ClanMember)
        .join(ClanMember, ClanMember.clan_id == Clan.id)
        .where(ClanMember.user_id == user_id)
        .order_by(ClanMember.joined_at.desc(), ClanMember.id.desc())
    )
    rows: List[Tuple[Clan, ClanMember]] = [(row.Clan, row.ClanMember) for row in result.all()]
    counts = await _member_counts(db, [clan.id for clan, _ in rows])
    return [_clan_response(clan, counts.get(clan.id, 0), member) for clan, member in rows]


@router.post("/join", response_model=ClanJoinResponse)
async def join_clan(
    body: ClanJoinRequest,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> ClanJoinResponse:
    """Join a clan by its 8-character code."""
    code = body.clan_code.strip().upper()
    result = await db.execute(select(Clan).where(Clan.clan_code == code))
    clan = result.scalar_one_or_none()
    if clan is None:
        raise HTTPException(status_code=404, detail="Clan not found.")

    if await get_clan_role(db, clan.id, user.id) is not None:
        raise HTTPException(status_code=400, detail="You are already a member of this clan.")

    member_count = (await _member_counts(db, [clan.id])).get(clan.id, 0)
    if member_count >= clan.max_members:
        raise HTTPException(status_code=400, detail="Clan is full.")

    limits = get_feature_limits(user)
    if await _membership_count(db, user.id) >= limits.max_clans:
        raise HTTPException(
            status_code=400,
            detail=f"You can be a member of at most {limits.max_clans} clans.",
        )

    member = ClanMember(clan_id=clan.id, user_id=user.id, role=ClanRole.MEMBER)
    db.add(member)
    await db.flush()

    logger.info("User %s joined clan id=%d", user.id, clan.id)
    return ClanJoinResponse(
        message=f"Joined clan {clan.name}",
        clan=_clan_response(clan, member_count + 1, member),
    )


@router.post("/{clan_id}/leave", response_model=MessageResponse)
async def leave_clan(
    clan_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """Leave a clan. The owner cannot leave their own clan."""
    result = await db.execute(
        select(ClanMember).where(ClanMember.clan_id == clan_id, ClanMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise HTTPException(status_code=404, detail="You are not a member of this clan.")
    if member.role == ClanRole.OWNER:
        raise HTTPException(status_code=400, detail="The clan owner cannot leave the clan.")

    await db.delete(member)
    await db.flush()
    logger.info("User %s left clan id=%d", user_id, clan_id)
    return MessageResponse(message="Left clan successfully")


# ═══════════════════════════════════════════════════════════════════════════════
# MEMBERS / STATS
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/{clan_id}/members", response_model=List[ClanMemberResponse])
async def list_clan_members(
    clan_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[ClanMemberResponse]:
    await _get_visible_clan(db, clan_id, user_id)
    return await _members_with_stats(db, clan_id)


@router.get("/{clan_id}/stats", response_model=ClanStatsResponse)
async def get_clan_stats(
    clan_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> ClanStatsResponse:
    """Member leaderboard by XP plus clan-wide totals."""
    clan = await _get_visible_clan(db, clan_id, user_id)
    members = await _members_with_stats(db, clan_id)
    ordered = sorted(members, key=lambda m: m.xp, reverse=True)

    leaderboard = [
        ClanLeaderboardEntry(rank=i + 1, **m.model_dump())
        for i, m in enumerate(ordered)
    ]
    average_accuracy = (
        round(sum(m.accuracy for m in members) / len(members), 2) if members else 0.0
    )
    return ClanStatsResponse(
        clan_id=clan.id,
        clan_name=clan.name,
        total_members=len(members),
        total_xp=sum(m.xp for m in members),
        total_wins=sum(m.total_wins for m in members),
        total_games=sum(m.total_games for m in members),
        average_accuracy=average_accuracy,
        leaderboard=leaderboard,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# CLAN SESSIONS
# ═══════════════════════════════════════════════════════════════════════════════

@router.post(
    "/{clan_id}/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_clan_session(
    clan_id: int,
    body: ClanSessionCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Schedule a quiz session for the clan. Owners and admins only."""
    clan = await _get_visible_clan(db, clan_id, user_id)
    role = await get_clan_role(db, clan_id, user_id)
    if role not in (ClanRole.OWNER, ClanRole.ADMIN):
        raise HTTPException(status_code=403, detail="Only clan owners and admins can create sessions.")

    session = QuizSession(
        clan_id=clan.id,
        room_id=None,
        created_by=user_id,
        session_name=f"Clan: {clan.name} - {body.topic or 'Quiz Session'}",
        topic=body.topic,
        difficulty=Difficulty(body.difficulty.value),
        total_questions=body.total_questions,
        time_limit=body.time_limit,
        status=SessionStatus.WAITING,
    )
    db.add(session)
    await db.flush()

    logger.info("Clan id=%d: session id=%d created by %s", clan.id, session.id, user_id)
    return await session_response(db, session)
