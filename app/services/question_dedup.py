"""
Question history and de-duplication.

Every question served to a user is recorded so later quizzes on the same
document (or the same topic configuration) can avoid repeats, and so wrong
answers can be resurfaced for review.
"""
from __future__ import annotations

import dataclasses
import hashlib
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.database_models import AnswerHistory, QuestionHistory

logger = logging.getLogger(__name__)


def generate_topic_hash(
    topic: Optional[str],
    difficulty: Optional[str] = None,
    education_level: Optional[str] = None,
    content_focus: Optional[str] = None,
) -> str:
    """Stable 32-hex fingerprint of a quiz configuration."""
    difficulty = getattr(difficulty, "value", difficulty)
    raw = "|".join(str(part or "") for part in (topic, difficulty, education_level, content_focus))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def _jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def is_question_duplicate(
    new_question: str,
    previous_questions: Sequence[str],
    threshold: float = 0.8,
) -> bool:
    """Exact (case-insensitive) match or word-set Jaccard similarity >= threshold."""
    normalized_new = new_question.lower().strip()
    new_words = normalized_new.split()
    for previous in previous_questions:
        normalized_prev = previous.lower().strip()
        if normalized_new == normalized_prev:
            return True
        if _jaccard(new_words, normalized_prev.split()) >= threshold:
            return True
    return False


def filter_duplicate_questions(
    questions: List[Dict[str, Any]],
    previous_questions: Sequence[str],
    threshold: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """Drop generated questions that repeat history or each other."""
    threshold = settings.DUPLICATE_SIMILARITY_THRESHOLD if threshold is None else threshold
    seen: List[str] = list(previous_questions)
    kept: List[Dict[str, Any]] = []
    for question in questions:
        text = str(question.get("question") or "")
        if not text or is_question_duplicate(text, seen, threshold):
            continue
        kept.append(question)
        seen.append(text)
    return kept


def _scope_filter(stmt, user_id: str, document_id: Optional[int], topic_hash: Optional[str]):
    stmt = stmt.where(QuestionHistory.user_id == user_id)
    if document_id is not None:
        return stmt.where(QuestionHistory.document_id == document_id)
    if topic_hash:
        return stmt.where(QuestionHistory.topic_hash == topic_hash)
    return stmt


async def get_previous_questions(
    db: AsyncSession,
    user_id: str,
    document_id: Optional[int] = None,
    topic_hash: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[str]:
    """Question texts previously served in this scope, newest first."""
    limit = limit or settings.PREVIOUS_QUESTIONS_LIMIT
    stmt = _scope_filter(select(QuestionHistory.question_text), user_id, document_id, topic_hash)
    result = await db.execute(
        stmt.order_by(QuestionHistory.asked_at.desc(), QuestionHistory.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


@dataclasses.dataclass
class WrongAnswer:
    question_history_id: int
    question_text: str
    question_type: Optional[str]
    options: Optional[List[str]]
    correct_answer: Optional[str]
    explanation: Optional[str]
    wrong_count: int
    total_attempts: int


async def get_wrong_answers(
    db: AsyncSession,
    user_id: str,
    document_id: Optional[int] = None,
    topic_hash: Optional[str] = None,
    limit: int = 50,
) -> List[WrongAnswer]:
    """Questions the user got wrong at least once, most-missed first."""
    wrong_count = func.sum(case((AnswerHistory.is_correct.is_(False), 1), else_=0)).label("wrong_count")
    attempts = func.count(AnswerHistory.id).label("attempts")

    stmt = (
        select(QuestionHistory, wrong_count, attempts)
        .join(AnswerHistory, AnswerHistory.question_history_id == QuestionHistory.id)
        .group_by(QuestionHistory.id)
    )
    stmt = _scope_filter(stmt, user_id, document_id, topic_hash)
    stmt = stmt.having(wrong_count > 0).order_by(wrong_count.desc(), QuestionHistory.id.desc()).limit(limit)

    result = await db.execute(stmt)
    return [
        WrongAnswer(
            question_history_id=row.QuestionHistory.id,
            question_text=row.QuestionHistory.question_text,
            question_type=row.QuestionHistory.question_type,
            options=row.QuestionHistory.options,
            correct_answer=row.QuestionHistory.correct_answer,
            explanation=row.QuestionHistory.explanation,
            wrong_count=int(row.wrong_count or 0),
            total_attempts=int(row.attempts or 0),
        )
        for row in result.all()
    ]


def _correct_answer_text(question: Dict[str, Any]) -> Optional[str]:
    correct = question.get("correct")
    options = question.get("options") or []
    if isinstance(correct, int) and not isinstance(correct, bool):
        if 0 <= correct < len(options):
            return str(options[correct])
        return str(correct)
    expected = question.get("expected_answers") or []
    if expected:
        return str(expected[0])
    answer = question.get("a") or question.get("answer")
    return str(answer) if answer is not None else None


async def store_question_history(
    db: AsyncSession,
    user_id: str,
    questions: List[Dict[str, Any]],
    document_id: Optional[int] = None,
    topic_hash: Optional[str] = None,
) -> List[QuestionHistory]:
    """
    Record served questions. Writes run inside a savepoint; a failure is
    logged, only the history rows are rolled back and the caller's
    transaction stays usable.
    """
    rows: List[QuestionHistory] = []
    try:
        async with db.begin_nested():
            for question in questions:
                text = str(question.get("question") or "").strip()
                if not text:
                    continue
                row = QuestionHistory(
                    user_id=user_id,
                    document_id=document_id,
                    topic_hash=topic_hash,
                    question_text=text,
                    question_type=question.get("type"),
                    options=question.get("options"),
                    correct_answer=_correct_answer_text(question),
                    explanation=question.get("explanation"),
                )
                db.add(row)
                rows.append(row)
            await db.flush()
    except Exception as exc:
        logger.error("store_question_history failed for user=%s: %s", user_id, exc)
        return []
    return rows


async def store_answer_history(
    db: AsyncSession,
    user_id: str,
    question_history_id: int,
    user_answer: Any,
    is_correct: bool,
    time_taken: Optional[float] = None,
    session_id: Optional[int] = None,
) -> Optional[AnswerHistory]:
    """Record one answer against a history row inside a savepoint. Never raises."""
    try:
        async with db.begin_nested():
            owner = await db.execute(
                select(QuestionHistory.id).where(
                    QuestionHistory.id == question_history_id,
                    QuestionHistory.user_id == user_id,
                )
            )
            if owner.scalar_one_or_none() is None:
                logger.warning(
                    "store_answer_history: question %s not found for user=%s", question_history_id, user_id
                )
                return None

            row = AnswerHistory(
                user_id=user_id,
                question_history_id=question_history_id,
                session_id=session_id,
                user_answer=None if user_answer is None else str(user_answer),
                is_correct=bool(is_correct),
                time_taken=time_taken,
            )
            db.add(row)
            await db.flush()
        return row
    except Exception as exc:
        logger.error("store_answer_history failed for user=%s: %s", user_id, exc)
        return None


async def record_served_answer(
    db: AsyncSession,
    user_id: str,
    question: Dict[str, Any],
    user_answer: Any,
    is_correct: bool,
    time_taken: Optional[float] = None,
    session_id: Optional[int] = None,
    document_id: Optional[int] = None,
    topic_hash: Optional[str] = None,
) -> Optional[AnswerHistory]:
    """
    Attach an answer to the user's history row for *question*, creating the
    row first when this user has not been served the question before.
    """
    text = str(question.get("question") or "").strip()
    if not text:
        return None
    try:
        async with db.begin_nested():
            existing = await db.execute(
                _scope_filter(select(QuestionHistory.id), user_id, document_id, topic_hash)
                .where(QuestionHistory.question_text == text)
                .order_by(QuestionHistory.id.desc())
                .limit(1)
            )
            history_id = existing.scalar_one_or_none()
    except Exception as exc:
        logger.error("record_served_answer lookup failed for user=%s: %s", user_id, exc)
        return None

    if history_id is None:
        rows = await store_question_history(
            db, user_id, [question], document_id=document_id, topic_hash=topic_hash
        )
        if not rows:
            return None
        history_id = rows[0].id

    return await store_answer_history(
        db,
        user_id,
        history_id,
        user_answer,
        is_correct,
        time_taken=time_taken,
        session_id=session_id,
    )
