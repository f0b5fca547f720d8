"""Tests for topic hashing, duplicate detection and question history."""
import pytest
from sqlalchemy import select

from app.models.database_models import Difficulty, User
from app.services.question_dedup import (
    filter_duplicate_questions,
    generate_topic_hash,
    get_previous_questions,
    get_wrong_answers,
    is_question_duplicate,
    record_served_answer,
    store_question_history,
)


def test_topic_hash_is_stable():
    first = generate_topic_hash("Biology", "medium", "high school", "cells")
    assert first == generate_topic_hash("Biology", Difficulty.MEDIUM, "high school", "cells")
    assert len(first) == 32
    assert first != generate_topic_hash("Biology", "hard", "high school", "cells")


def test_exact_duplicate_ignores_case():
    assert is_question_duplicate("What is DNA?", ["  what is dna?"]) is True


def test_similar_wording_is_duplicate():
    previous = ["What organelle produces most of the energy in a living cell"]
    assert is_question_duplicate("Which organelle produces most of the energy in a living cell", previous) is True
    assert is_question_duplicate("Name the largest planet", previous) is False


def test_filter_drops_history_and_internal_repeats():
    questions = [
        {"question": "What is the powerhouse of the cell?"},
        {"question": "What is the powerhouse of the cell?"},
        {"question": "Who wrote Hamlet?"},
        {"question": ""},
    ]
    kept = filter_duplicate_questions(questions, ["Who wrote Hamlet?"], threshold=0.8)
    assert [q["question"] for q in kept] == ["What is the powerhouse of the cell?"]


@pytest.mark.asyncio
async def test_history_roundtrip(db_session):
    db_session.add(User(id="hist-user", email="hist@example.com"))
    await db_session.flush()
    topic_hash = generate_topic_hash("Space", "easy")

    await store_question_history(
        db_session,
        "hist-user",
        [
            {"question": "Largest planet?", "type": "multiple_choice", "options": ["Mars", "Jupiter"], "correct": 1},
            {"question": "Closest star?", "type": "open_ended", "expected_answers": ["The Sun"]},
        ],
        topic_hash=topic_hash,
    )
    previous = await get_previous_questions(db_session, "hist-user", topic_hash=topic_hash)
    assert set(previous) == {"Largest planet?", "Closest star?"}
    assert await get_previous_questions(db_session, "hist-user", topic_hash="other") == []

    await record_served_answer(
        db_session, "hist-user", {"question": "Largest planet?"}, 0, False, topic_hash=topic_hash
    )
    await record_served_answer(
        db_session, "hist-user", {"question": "Closest star?"}, "the sun", True, topic_hash=topic_hash
    )

    wrong = await get_wrong_answers(db_session, "hist-user", topic_hash=topic_hash)
    assert [w.question_text for w in wrong] == ["Largest planet?"]
    assert wrong[0].correct_answer == "Jupiter"
    assert wrong[0].wrong_count == 1
    assert wrong[0].total_attempts == 1


@pytest.mark.asyncio
async def test_failed_history_write_leaves_session_usable(db_session):
    db_session.add(User(id="hist-user-2", email="hist2@example.com"))
    await db_session.flush()

    # A set is not JSON serialisable, so the flush of this row fails.
    rows = await store_question_history(
        db_session, "hist-user-2", [{"question": "Broken?", "options": {1, 2}}]
    )
    assert rows == []

    user = (await db_session.execute(select(User).where(User.id == "hist-user-2"))).scalar_one()
    assert user.email == "hist2@example.com"

    rows = await store_question_history(
        db_session, "hist-user-2", [{"question": "Working?", "options": ["a", "b"], "correct": 0}]
    )
    assert [r.question_text for r in rows] == ["Working?"]
    assert await get_previous_questions(db_session, "hist-user-2") == ["Working?"]

    answer = await record_served_answer(
        db_session, "hist-user-2", {"question": "Working?"}, "b", False
    )
    assert answer is not None
    assert answer.question_history_id == rows[0].id
