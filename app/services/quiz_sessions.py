"""
Session question storage shared by the sessions and generation routers.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database_models import Question, QuestionType, QuizSession
from app.utils.helpers import enum_value

logger = logging.getLogger(__name__)


def question_to_dict(question: Question) -> Dict[str, Any]:
    """Stored question in generator format (``question``/``correct`` keys)."""
    return {
        "idx": question.idx,
        "type": enum_value(question.type),
        "question": question.prompt,
        "options": question.options,
        "correct": question.correct_index,
        "expected_answers": question.expected_answers,
        "answer_format": question.answer_format,
        "hints": question.hints,
        "explanation": question.explanation,
    }


async def get_session_questions(db: AsyncSession, session_id: int) -> List[Question]:
    result = await db.execute(
        select(Question).where(Question.session_id == session_id).order_by(Question.idx)
    )
    return list(result.scalars().all())


async def count_session_questions(db: AsyncSession, session_id: int) -> int:
    result = await db.execute(
        select(func.count(Question.id)).where(Question.session_id == session_id)
    )
    return result.scalar() or 0


async def replace_session_questions(
    db: AsyncSession,
    session: QuizSession,
    questions: Sequence[Dict[str, Any]],
) -> List[Question]:
    """Drop the session's questions and store *questions* as idx 0..n-1."""
    await db.execute(delete(Question).where(Question.session_id == session.id))

    rows: List[Question] = []
    for idx, q in enumerate(questions):
        row = Question(
            session_id=session.id,
            idx=idx,
            type=QuestionType(enum_value(q.get("type")) or QuestionType.MULTIPLE_CHOICE.value),
            prompt=q["question"],
            options=q.get("options"),
            correct_index=q.get("correct"),
            expected_answers=q.get("expected_answers"),
            answer_format=q.get("answer_format"),
            explanation=q.get("explanation"),
            hints=q.get("hints"),
        )
        db.add(row)
        rows.append(row)

    session.total_questions = len(rows)
    await db.flush()
    logger.info("Stored %d question(s) for session id=%d", len(rows), session.id)
    return rows
