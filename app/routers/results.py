"""
Game result endpoints: verified multiplayer ranking, singleplayer XP,
recent history.

Multiplayer scores are recomputed from the answers stored during the
session; client-reported numbers only fill gaps (e.g. timing) and are
logged when they disagree.
"""
import dataclasses
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_user_id, get_or_create_user, is_session_participant
from app.models.database_models import (
    Difficulty,
    Document,
    GameResult,
    GameRoom,
    QuizAnswer,
    QuizSession,
    RoomStatus,
    SessionStatus,
    User,
)
from app.models.schemas import (
    GameResultResponse,
    MultiplayerResultsRequest,
    MultiplayerResultsResponse,
    PlayerRankingResponse,
    PlayerResultIn,
    SingleplayerResultRequest,
    SingleplayerResultResponse,
    XPBreakdownSchema,
)
from app.services.player_stats import (
    add_xp,
    get_display_names,
    get_or_create_stats,
    record_answers,
    record_multiplayer_game,
)
from app.services.question_dedup import generate_topic_hash, record_served_answer
from app.services.ranking import ranks_by_id
from app.services.xp_calculator import calculate_singleplayer_xp, calculate_xp, check_level_up
from app.utils.helpers import as_utc, safe_divide, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

REPEAT_COMPLETION_MESSAGE = "You've already completed this quiz session. No XP awarded for repeats."
RECENT_RESULTS_LIMIT = 10


# ─── Score verification ───────────────────────────────────────────────────────

@dataclasses.dataclass
class VerifiedScore:
    user_id: str
    questions_answered: int
    correct_answers: int
    accuracy: float  # fraction 0-1
    score: float  # accuracy x 100, 2 dp
    total_time: float
    average_time: float


def _average_time(
    answers: Sequence[QuizAnswer],
    reported: Optional[PlayerResultIn],
    fallback: float,
) -> float:
    """
    Mean time_taken, else mean gap between submissions, else the client's
    figure, else the session time limit.
    """
    timed = [a.time_taken for a in answers if a.time_taken is not None]
    if timed:
        return sum(timed) / len(timed)

    stamps = sorted(as_utc(a.submitted_at) for a in answers if a.submitted_at is not None)
    if len(stamps) >= 2:
        gaps = [(b - a).total_seconds() for a, b in zip(stamps, stamps[1:])]
        return sum(gaps) / len(gaps)

    if reported is not None and reported.average_time_per_question is not None:
        return reported.average_time_per_question
    return float(fallback)


def verify_score(
    user_id: str,
    answers: Sequence[QuizAnswer],
    reported: Optional[PlayerResultIn],
    time_limit: float,
) -> VerifiedScore:
    answered = len(answers)
    correct = sum(1 for a in answers if a.is_correct)
    accuracy = safe_divide(correct, answered)
    score = round(accuracy * 100, 2)

    timed = [a.time_taken for a in answers if a.time_taken is not None]
    if timed:
        total_time = float(sum(timed))
    elif reported is not None:
        total_time = reported.total_time
    else:
        total_time = 0.0

    if reported is not None and (
        reported.correct_answers != correct
        or reported.questions_answered != answered
        or round(reported.score, 2) != score
    ):
        logger.warning(
            "Client result mismatch for user=%s: reported %d/%d score=%s, stored %d/%d score=%s",
            user_id,
            reported.correct_answers, reported.questions_answered, reported.score,
            correct, answered, score,
        )

    return VerifiedScore(
        user_id=user_id,
        questions_answered=answered,
        correct_answers=correct,
        accuracy=accuracy,
        score=score,
        total_time=round(total_time, 2),
        average_time=_average_time(answers, reported, time_limit),
    )


# ─── Response builders ────────────────────────────────────────────────────────

async def _session_rankings(db: AsyncSession, session_id: int) -> List[PlayerRankingResponse]:
    result = await db.execute(
        select(GameResult)
        .where(GameResult.session_id == session_id)
        .order_by(GameResult.rank, GameResult.id)
    )
    rows = result.scalars().all()
    names = await get_display_names(db, [r.user_id for r in rows])
    return [
        PlayerRankingResponse(
            user_id=r.user_id,
            display_name=names.get(r.user_id),
            rank=r.rank or 0,
            score=r.final_score,
            questions_answered=r.questions_answered,
            correct_answers=r.correct_answers,
            accuracy=r.accuracy,
            total_time=r.total_time,
            xp_earned=r.xp_earned,
            xp_breakdown=XPBreakdownSchema(**r.xp_breakdown) if r.xp_breakdown else None,
        )
        for r in rows
    ]


# ═══════════════════════════════════════════════════════════════════════════════
# MULTIPLAYER
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("/multiplayer", response_model=MultiplayerResultsResponse)
async def submit_multiplayer_results(
    body: MultiplayerResultsRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> MultiplayerResultsResponse:
    """
    Finish a multiplayer session: verify scores, rank with ties, award XP
    and update every player's stats. Calling again awards nothing.
    """
    session = await db.get(QuizSession, body.session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {body.session_id} not found.")
    if not await is_session_participant(db, session, user_id):
        raise HTTPException(status_code=403, detail="You are not a participant in this session.")

    existing_result = await db.execute(
        select(GameResult.user_id).where(GameResult.session_id == session.id)
    )
    already_recorded = set(existing_result.scalars().all())
    if user_id in already_recorded:
        return MultiplayerResultsResponse(
            session_id=session.id,
            xp_awarded=False,
            message=REPEAT_COMPLETION_MESSAGE,
            results=await _session_rankings(db, session.id),
        )

    answers_result = await db.execute(
        select(QuizAnswer)
        .where(QuizAnswer.session_id == session.id)
        .order_by(QuizAnswer.submitted_at, QuizAnswer.id)
    )
    answers_by_user: Dict[str, List[QuizAnswer]] = defaultdict(list)
    for answer in answers_result.scalars().all():
        answers_by_user[answer.user_id].append(answer)

    reported: Dict[str, PlayerResultIn] = {}
    for entry in body.player_results:
        if entry.user_id in answers_by_user or await is_session_participant(db, session, entry.user_id):
            reported[entry.user_id] = entry
        else:
            logger.warning(
                "Ignoring reported result for non-participant %s in session=%d", entry.user_id, session.id
            )

    participant_ids = list(dict.fromkeys([*answers_by_user.keys(), *reported.keys()]))
    if not participant_ids:
        raise HTTPException(status_code=400, detail="No answers recorded for this session.")

    scores = [
        verify_score(uid, answers_by_user.get(uid, []), reported.get(uid), session.time_limit)
        for uid in participant_ids
    ]
    ranks = ranks_by_id(scores, key=lambda s: s.score, id_of=lambda s: s.user_id)

    awarded = 0
    for verified in scores:
        if verified.user_id in already_recorded:
            continue
        rank = ranks[verified.user_id]
        stats = await get_or_create_stats(db, verified.user_id)
        breakdown = calculate_xp(
            accuracy=verified.accuracy,
            difficulty=session.difficulty,
            average_time=verified.average_time,
            win_streak=stats.win_streak or 0,
            rank=rank,
            is_multiplayer=True,
        )
        db.add(GameResult(
            session_id=session.id,
            user_id=verified.user_id,
            final_score=verified.score,
            questions_answered=verified.questions_answered,
            correct_answers=verified.correct_answers,
            accuracy=round(verified.accuracy * 100, 2),
            total_time=verified.total_time,
            average_time=round(verified.average_time, 2),
            rank=rank,
            xp_earned=breakdown.total_xp,
            xp_breakdown=breakdown.as_dict(),
        ))
        add_xp(stats, breakdown.total_xp)
        record_answers(stats, verified.questions_answered, verified.correct_answers)
        record_multiplayer_game(stats, won=rank == 1)
        awarded += 1

    session.status = SessionStatus.COMPLETE
    session.ended_at = utcnow()
    if session.room_id is not None:
        room = await db.get(GameRoom, session.room_id)
        if room is not None:
            room.status = RoomStatus.COMPLETED
    await db.flush()

    logger.info(
        "Session id=%d completed: %d player(s) ranked, %d result(s) recorded",
        session.id, len(scores), awarded,
    )
    return MultiplayerResultsResponse(
        session_id=session.id,
        xp_awarded=True,
        message=f"Results recorded for {awarded} player(s).",
        results=await _session_rankings(db, session.id),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLEPLAYER
# ═══════════════════════════════════════════════════════════════════════════════

@router.post(
    "/singleplayer",
    response_model=SingleplayerResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_singleplayer_result(
    body: SingleplayerResultRequest,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> SingleplayerResultResponse:
    """Record a solo quiz and award XP. Games, wins and win streak are untouched."""
    if body.document_id is not None:
        doc = await db.execute(
            select(Document.id).where(Document.id == body.document_id, Document.user_id == user.id)
        )
        if doc.scalar_one_or_none() is None:
            raise HTTPException(status_code=404, detail="Document not found.")

    stats = await get_or_create_stats(db, user.id)
    old_xp = stats.xp or 0
    xp = calculate_singleplayer_xp(body.correct_answers, body.total_questions)
    accuracy = round(body.correct_answers / body.total_questions * 100, 2)
    now = utcnow()

    session = QuizSession(
        created_by=user.id,
        session_name=f"Solo: {body.topic or 'Quiz'}",
        topic=body.topic,
        difficulty=Difficulty(body.difficulty.value),
        total_questions=body.total_questions,
        status=SessionStatus.COMPLETE,
        started_at=now,
        ended_at=now,
    )
    db.add(session)
    await db.flush()

    total_time = body.time_spent or 0.0
    db.add(GameResult(
        session_id=session.id,
        user_id=user.id,
        final_score=accuracy,
        questions_answered=body.total_questions,
        correct_answers=body.correct_answers,
        accuracy=accuracy,
        total_time=total_time,
        average_time=round(total_time / body.total_questions, 2) if body.time_spent else None,
        rank=None,
        xp_earned=xp,
    ))
    add_xp(stats, xp)
    record_answers(stats, body.total_questions, body.correct_answers)
    await db.flush()

    topic_hash = generate_topic_hash(body.topic, body.difficulty) if body.document_id is None else None
    for answer in body.answers:
        await record_served_answer(
            db,
            user.id,
            {
                "question": answer.question,
                "type": answer.question_type,
                "options": answer.options,
                "a": answer.correct_answer,
                "explanation": answer.explanation,
            },
            answer.user_answer,
            answer.is_correct,
            time_taken=answer.time_taken,
            session_id=session.id,
            document_id=body.document_id,
            topic_hash=topic_hash,
        )

    level_up = check_level_up(old_xp, stats.xp)
    logger.info(
        "Singleplayer result user=%s %d/%d xp=+%d level=%d",
        user.id, body.correct_answers, body.total_questions, xp, stats.level,
    )
    return SingleplayerResultResponse(
        session_id=session.id,
        xp_earned=xp,
        total_xp=stats.xp,
        level=stats.level,
        leveled_up=level_up.leveled_up,
        accuracy=accuracy,
        total_questions_answered=stats.total_questions_answered,
        correct_answers=stats.correct_answers,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# HISTORY
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/recent", response_model=List[GameResultResponse])
async def recent_results(
    limit: int = Query(RECENT_RESULTS_LIMIT, ge=1, le=50),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[GameResultResponse]:
    """The caller's most recent game results, newest first."""
    result = await db.execute(
        select(GameResult, QuizSession)
        .join(QuizSession, QuizSession.id == GameResult.session_id)
        .where(GameResult.user_id == user_id)
        .order_by(GameResult.completed_at.desc(), GameResult.id.desc())
        .limit(limit)
    )
    return [
        GameResultResponse(
            id=row.GameResult.id,
            session_id=row.GameResult.session_id,
            session_name=row.QuizSession.session_name,
            topic=row.QuizSession.topic,
            is_multiplayer=row.QuizSession.room_id is not None or row.QuizSession.clan_id is not None,
            final_score=row.GameResult.final_score,
            questions_answered=row.GameResult.questions_answered,
            correct_answers=row.GameResult.correct_answers,
            accuracy=row.GameResult.accuracy,
            rank=row.GameResult.rank,
            xp_earned=row.GameResult.xp_earned,
            completed_at=row.GameResult.completed_at,
        )
        for row in result.all()
    ]
