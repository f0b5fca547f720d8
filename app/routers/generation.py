"""
LLM-backed quiz generation, answer evaluation and wrong-answer review.

Generated questions are filtered against the caller's question history so
repeated quizzes on the same material keep producing new questions.
"""
import dataclasses
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import (
    can_manage_session,
    get_current_user_id,
    get_or_create_user,
    is_session_participant,
)
from app.models.database_models import QuizSession, User
from app.models.schemas import (
    DifficultySchema,
    EvaluateAnswerRequest,
    EvaluateAnswerResponse,
    QuizGenerateRequest,
    QuizGenerateResponse,
    QuizQuestionSchema,
    WrongAnswerResponse,
)
from app.routers.documents import get_user_document
from app.services.llm_service import LLMService, LLMServiceError, get_llm_service
from app.services.question_dedup import (
    filter_duplicate_questions,
    generate_topic_hash,
    get_previous_questions,
    get_wrong_answers,
    store_question_history,
)
from app.services.quiz_evaluator import is_answer_correct
from app.services.quiz_sessions import replace_session_questions
from app.services.subscription import get_feature_limits, pro_required

logger = logging.getLogger(__name__)

router = APIRouter()

NUMERIC_FORMATS = ("number", "numeric")


@router.post("/quiz", response_model=QuizGenerateResponse)
async def generate_quiz(
    body: QuizGenerateRequest,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
    llm: LLMService = Depends(get_llm_service),
) -> QuizGenerateResponse:
    """
    Generate quiz questions for a topic, optionally grounded in one of the
    caller's documents and optionally stored on a session.
    """
    limits = get_feature_limits(user)
    if body.total_questions > limits.questions_per_quiz:
        raise pro_required(
            f"Free accounts can generate up to {limits.questions_per_quiz} questions per quiz. "
            "Upgrade to Pro for longer quizzes."
        )

    source_text = ""
    if body.document_id is not None:
        document = await get_user_document(db, body.document_id, user.id)
        source_text = document.content_text or ""

    session: Optional[QuizSession] = None
    if body.session_id is not None:
        session = await db.get(QuizSession, body.session_id)
        if session is None or not await is_session_participant(db, session, user.id):
            raise HTTPException(status_code=404, detail=f"Session {body.session_id} not found.")
        if not await can_manage_session(db, session, user.id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the host or session creator can set questions.",
            )

    topic_hash = generate_topic_hash(
        body.topic, body.difficulty, body.education_level, body.content_focus
    )
    previous: List[str] = []
    if body.avoid_duplicates:
        previous = await get_previous_questions(
            db, user.id, document_id=body.document_id, topic_hash=topic_hash
        )

    try:
        generated = await llm.generate_quiz(
            topic=body.topic,
            difficulty=body.difficulty.value,
            num_questions=body.total_questions,
            source_text=source_text,
            instructions=body.instructions or "",
            education_level=body.education_level or "",
            content_focus=body.content_focus or "",
            avoid_questions=previous,
        )
    except LLMServiceError as exc:
        logger.error("Quiz generation failed for user=%s topic=%r: %s", user.id, body.topic, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    kept = filter_duplicate_questions(generated, previous) if body.avoid_duplicates else generated
    duplicates_removed = len(generated) - len(kept)
    if duplicates_removed:
        logger.info(
            "Dropped %d duplicate question(s) for user=%s topic=%r", duplicates_removed, user.id, body.topic
        )

    await store_question_history(
        db, user.id, kept, document_id=body.document_id, topic_hash=topic_hash
    )
    if session is not None and kept:
        await replace_session_questions(db, session, kept)

    return QuizGenerateResponse(
        topic=body.topic,
        difficulty=body.difficulty,
        topic_hash=topic_hash,
        questions=[QuizQuestionSchema(**q) for q in kept],
        duplicates_removed=duplicates_removed,
        session_id=session.id if session is not None else None,
    )


@router.post("/evaluate", response_model=EvaluateAnswerResponse)
async def evaluate_answer(
    body: EvaluateAnswerRequest,
    user_id: str = Depends(get_current_user_id),
    llm: LLMService = Depends(get_llm_service),
) -> EvaluateAnswerResponse:
    """
    Grade one answer. Open-ended text answers that fail fuzzy matching get a
    second opinion from the LLM when one is configured.
    """
    question = body.question.model_dump()
    is_correct = is_answer_correct(question, body.user_answer)

    qtype = str(question.get("type") or "").lower()
    answer_format = str(question.get("answer_format") or "").lower()
    wants_llm = (
        not is_correct
        and qtype == "open_ended"
        and answer_format not in NUMERIC_FORMATS
        and isinstance(body.user_answer, str)
        and llm.is_configured
    )
    if not wants_llm:
        return EvaluateAnswerResponse(is_correct=is_correct, used_llm=False, confidence=1.0)

    expected = question.get("expected_answers") or ([question["a"]] if question.get("a") else [])
    try:
        judgement = await llm.evaluate_answer(
            question=question.get("question") or "",
            user_answer=body.user_answer,
            expected_answers=expected,
            explanation=question.get("explanation") or "",
        )
    except LLMServiceError as exc:
        logger.warning("LLM evaluation failed, keeping fuzzy result: %s", exc)
        return EvaluateAnswerResponse(is_correct=is_correct, used_llm=False, confidence=1.0)

    return EvaluateAnswerResponse(
        is_correct=judgement.is_correct,
        used_llm=True,
        confidence=judgement.confidence,
    )


@router.get("/review", response_model=List[WrongAnswerResponse])
async def review_wrong_answers(
    document_id: Optional[int] = None,
    topic: Optional[str] = None,
    difficulty: DifficultySchema = DifficultySchema.MEDIUM,
    education_level: Optional[str] = None,
    content_focus: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[WrongAnswerResponse]:
    """Questions the caller has missed, most-missed first."""
    topic_hash = None
    if document_id is None and topic:
        topic_hash = generate_topic_hash(topic, difficulty, education_level, content_focus)

    wrong = await get_wrong_answers(
        db, user_id, document_id=document_id, topic_hash=topic_hash, limit=limit
    )
    return [WrongAnswerResponse(**dataclasses.asdict(w)) for w in wrong]
