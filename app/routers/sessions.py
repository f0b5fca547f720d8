"""
Quiz session endpoints.

A session is one played quiz owned by a room (or a clan, see clans.py).
Participants are the owning room's or clan's members.

Route summary
-------------
POST /api/sessions                              create session for a room (host)
GET  /api/sessions/{session_id}                 session detail
POST /api/sessions/{session_id}/questions       replace questions (host/creator)
GET  /api/sessions/{session_id}/questions       questions ordered by idx
POST /api/sessions/{session_id}/start           mark active (host/creator)
POST /api/sessions/{session_id}/answers         submit one answer
POST /api/sessions/{session_id}/cheat-events    report an anti-cheat violation
GET  /api/sessions/{session_id}/events          session event log
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import (
    can_manage_session,
    get_current_user_id,
    get_participant_session,
    is_session_participant,
)
from app.models.database_models import (
    GameRoom,
    Question,
    QuizAnswer,
    QuizSession,
    RoomMember,
    RoomStatus,
    SessionEvent,
    SessionStatus,
)
from app.models.schemas import (
    AnswerSubmitRequest,
    AnswerSubmitResponse,
    CheatEventRequest,
    SessionCreateRequest,
    SessionEventResponse,
    SessionQuestionResponse,
    SessionQuestionsRequest,
    SessionQuestionsResponse,
    SessionResponse,
)
from app.services.player_stats import get_display_names
from app.services.question_dedup import generate_topic_hash, record_served_answer
from app.services.quiz_evaluator import is_answer_correct
from app.services.quiz_sessions import (
    count_session_questions,
    get_session_questions,
    question_to_dict,
    replace_session_questions,
)
from app.utils.helpers import enum_value, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

CHEAT_EVENT_TYPE = "cheat_detected"


# ─── Helpers ──────────────────────────────────────────────────────────────────

async def session_response(db: AsyncSession, session: QuizSession) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        room_id=session.room_id,
        clan_id=session.clan_id,
        session_name=session.session_name,
        topic=session.topic,
        difficulty=enum_value(session.difficulty),
        total_questions=session.total_questions,
        time_limit=session.time_limit,
        status=enum_value(session.status),
        created_by=session.created_by,
        started_at=session.started_at,
        ended_at=session.ended_at,
        created_at=session.created_at,
        question_count=await count_session_questions(db, session.id),
    )


async def _require_manager(db: AsyncSession, session: QuizSession, user_id: str) -> None:
    if not await can_manage_session(db, session, user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the host or session creator can do this.",
        )


def _require_not_complete(session: QuizSession) -> None:
    if session.status == SessionStatus.COMPLETE:
        raise HTTPException(status_code=400, detail="Session has already ended.")


# ═══════════════════════════════════════════════════════════════════════════════
# SESSION LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: SessionCreateRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Create a waiting session for a room, copying the room's settings."""
    result = await db.execute(
        select(GameRoom)
        .join(RoomMember, RoomMember.room_id == GameRoom.id)
        .where(GameRoom.id == body.room_id, RoomMember.user_id == user_id)
    )
    room = result.scalar_one_or_none()
    if room is None:
        raise HTTPException(status_code=404, detail=f"Room {body.room_id} not found.")
    if room.host_id != user_id:
        raise HTTPException(status_code=403, detail="Only the host can start a quiz session.")

    topic = body.topic or room.topic
    session = QuizSession(
        room_id=room.id,
        created_by=user_id,
        session_name=f"{room.name} - {topic or 'Quiz Session'}",
        topic=topic,
        difficulty=room.difficulty,
        total_questions=room.total_questions,
        time_limit=room.time_limit,
        status=SessionStatus.WAITING,
    )
    db.add(session)
    await db.flush()

    logger.info("Created session id=%d for room id=%d", session.id, room.id)
    return await session_response(db, session)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session: QuizSession = Depends(get_participant_session),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Session detail."""
    return await session_response(db, session)


@router.post("/{session_id}/start", response_model=SessionResponse)
async def start_session(
    session: QuizSession = Depends(get_participant_session),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Mark the session active; the owning room becomes active too."""
    await _require_manager(db, session, user_id)
    _require_not_complete(session)

    session.status = SessionStatus.ACTIVE
    session.started_at = utcnow()
    if session.room_id is not None:
        room = await db.get(GameRoom, session.room_id)
        if room is not None:
            room.status = RoomStatus.ACTIVE
    await db.flush()

    logger.info("Session id=%d started by %s", session.id, user_id)
    return await session_response(db, session)


# ═══════════════════════════════════════════════════════════════════════════════
# QUESTIONS
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("/{session_id}/questions", response_model=SessionQuestionsResponse)
async def set_session_questions(
    body: SessionQuestionsRequest,
    session: QuizSession = Depends(get_participant_session),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SessionQuestionsResponse:
    """Replace the session's questions."""
    await _require_manager(db, session, user_id)
    _require_not_complete(session)

    rows = await replace_session_questions(
        db, session, [q.model_dump(mode="json") for q in body.questions]
    )
    return SessionQuestionsResponse(
        session_id=session.id,
        questions=[SessionQuestionResponse(**question_to_dict(q)) for q in rows],
    )


@router.get("/{session_id}/questions", response_model=SessionQuestionsResponse)
async def list_session_questions(
    session: QuizSession = Depends(get_participant_session),
    db: AsyncSession = Depends(get_db),
) -> SessionQuestionsResponse:
    """Questions ordered by idx."""
    rows = await get_session_questions(db, session.id)
    return SessionQuestionsResponse(
        session_id=session.id,
        questions=[SessionQuestionResponse(**question_to_dict(q)) for q in rows],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# ANSWERS
# ═══════════════════════════════════════════════════════════════════════════════

@router.post(
    "/{session_id}/answers",
    response_model=AnswerSubmitResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_answer(
    body: AnswerSubmitRequest,
    session: QuizSession = Depends(get_participant_session),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> AnswerSubmitResponse:
    """Evaluate and record one answer. Each question can be answered once."""
    _require_not_complete(session)

    q_result = await db.execute(
        select(Question).where(Question.session_id == session.id, Question.idx == body.question_idx)
    )
    question = q_result.scalar_one_or_none()
    if question is None:
        raise HTTPException(status_code=404, detail=f"Question {body.question_idx} not found.")

    existing = await db.execute(
        select(QuizAnswer.id).where(
            QuizAnswer.session_id == session.id,
            QuizAnswer.user_id == user_id,
            QuizAnswer.question_idx == body.question_idx,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="Question already answered.")

    correct = is_answer_correct(question, body.answer)
    db.add(QuizAnswer(
        session_id=session.id,
        user_id=user_id,
        question_idx=body.question_idx,
        answer=body.answer,
        is_correct=correct,
        time_taken=body.time_taken,
    ))
    await db.flush()

    await record_served_answer(
        db,
        user_id,
        question_to_dict(question),
        body.answer,
        correct,
        time_taken=body.time_taken,
        session_id=session.id,
        topic_hash=generate_topic_hash(session.topic, session.difficulty),
    )

    logger.debug(
        "Answer session=%d user=%s idx=%d correct=%s", session.id, user_id, body.question_idx, correct
    )
    return AnswerSubmitResponse(
        session_id=session.id,
        question_idx=body.question_idx,
        is_correct=correct,
        explanation=question.explanation,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# EVENTS
# ═══════════════════════════════════════════════════════════════════════════════

@router.post(
    "/{session_id}/cheat-events",
    response_model=SessionEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def report_cheat_event(
    session_id: int,
    body: CheatEventRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> SessionEventResponse:
    """Record a client-detected violation (tab switch, window blur, ...)."""
    session = await db.get(QuizSession, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found.")
    if not await is_session_participant(db, session, user_id):
        raise HTTPException(status_code=403, detail="You are not a participant in this session.")

    names = await get_display_names(db, [user_id])
    event = SessionEvent(
        session_id=session.id,
        user_id=user_id,
        event_type=CHEAT_EVENT_TYPE,
        payload={
            "user_id": user_id,
            "display_name": names.get(user_id),
            "violation_type": body.violation_type.value,
            "duration_seconds": round(body.duration_ms / 1000),
            "timestamp": utcnow().isoformat(),
        },
    )
    db.add(event)
    await db.flush()

    logger.warning(
        "Cheat event session=%d user=%s type=%s duration_ms=%d",
        session.id, user_id, body.violation_type.value, body.duration_ms,
    )
    return SessionEventResponse.model_validate(event)


@router.get("/{session_id}/events", response_model=List[SessionEventResponse])
async def list_session_events(
    session: QuizSession = Depends(get_participant_session),
    db: AsyncSession = Depends(get_db),
) -> List[SessionEventResponse]:
    """Event log, oldest first."""
    result = await db.execute(
        select(SessionEvent)
        .where(SessionEvent.session_id == session.id)
        .order_by(SessionEvent.created_at, SessionEvent.id)
    )
    return [SessionEventResponse.model_validate(e) for e in result.scalars().all()]
