"""
Shared fixtures for Brain Battle backend integration tests.

Runs against a throwaway SQLite file by default (override with
TEST_DATABASE_URL to point at Postgres). Each test function gets its own
session; tables are created up front and emptied after every test.
The LLM dependency is replaced by ``FakeLLMService`` so no network is used.
"""
from __future__ import annotations

import os
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Override DATABASE_URL *before* any app module is imported, so that
# settings.DATABASE_URL and the global engine point at the test DB.
TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///./brain_battle_test.db",
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.setdefault("LLM_API_KEY", "test-key")

from app.config import settings  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.database_models import SubscriptionTier, User  # noqa: E402
from app.services.llm_service import AnswerJudgement, LLMServiceError, get_llm_service  # noqa: E402
from app.services.rate_limiter import rate_limiter  # noqa: E402

# Table names in dependency order (children first) for cleanup
_ALL_TABLES = [
    "quiz_answer_history",
    "quiz_question_history",
    "study_notes",
    "documents",
    "achievements",
    "achievement_definitions",
    "session_events",
    "game_results",
    "quiz_answers",
    "questions",
    "quiz_sessions",
    "clan_members",
    "clans",
    "room_members",
    "game_rooms",
    "player_stats",
    "users",
]


# ---------------------------------------------------------------------------
# Fake LLM
# ---------------------------------------------------------------------------

class FakeLLMService:
    """Deterministic stand-in for LLMService; records every call."""

    def __init__(self) -> None:
        self.is_configured = True
        self.healthy = True
        self.fail = False
        self.quiz_questions: Optional[List[Dict[str, Any]]] = None
        self.judgement = AnswerJudgement(is_correct=True, confidence=0.9, reasoning="same idea")
        self.calls: List[Dict[str, Any]] = []

    async def check_health(self) -> bool:
        return self.healthy

    async def generate_quiz(
        self,
        topic: str,
        difficulty: str = "medium",
        num_questions: int = 5,
        source_text: str = "",
        instructions: str = "",
        education_level: str = "",
        content_focus: str = "",
        avoid_questions: Sequence[str] = (),
    ) -> List[Dict[str, Any]]:
        self.calls.append({
            "method": "generate_quiz",
            "topic": topic,
            "source_text": source_text,
            "avoid_questions": list(avoid_questions),
        })
        if self.fail:
            raise LLMServiceError("LLM unavailable")
        if self.quiz_questions is not None:
            return [dict(q) for q in self.quiz_questions]
        return [
            {
                "type": "multiple_choice",
                "question": f"{topic} question number {i + 1} about distinct fact {i * 7}?",
                "options": ["alpha", "beta", "gamma", "delta"],
                "correct": i % 4,
                "expected_answers": None,
                "answer_format": None,
                "hints": None,
                "explanation": f"Because of fact {i}.",
            }
            for i in range(num_questions)
        ]

    async def generate_notes(
        self,
        topic: str,
        source_text: str = "",
        instructions: str = "",
    ) -> Dict[str, Any]:
        self.calls.append({"method": "generate_notes", "topic": topic, "source_text": source_text})
        if self.fail:
            raise LLMServiceError("LLM unavailable")
        return {
            "title": f"Notes on {topic}",
            "outline": ["Introduction", "Details"],
            "key_terms": [{"term": topic, "definition": "The subject of these notes."}],
            "concepts": [{"heading": "Basics", "bullets": ["First point", "Second point"]}],
            "diagrams": [{"title": "Overview", "description": "A box diagram."}],
            "quiz": [{"q": f"What is {topic}?", "a": topic}],
        }

    async def evaluate_answer(
        self,
        question: str,
        user_answer: str,
        expected_answers: Sequence[str] = (),
        explanation: str = "",
    ) -> AnswerJudgement:
        self.calls.append({"method": "evaluate_answer", "user_answer": user_answer})
        if self.fail:
            raise LLMServiceError("LLM unavailable")
        return self.judgement


# ---------------------------------------------------------------------------
# Per-test fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a DB session for each test. After the test, all tables are emptied
    so each test starts with a clean slate.
    """
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async with engine.begin() as conn:
        for table in _ALL_TABLES:
            await conn.execute(text(f"DELETE FROM {table}"))

    await engine.dispose()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Keep uploaded files out of the working tree."""
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def fake_llm() -> FakeLLMService:
    return FakeLLMService()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    fake_llm: FakeLLMService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient wired to the FastAPI app with the DB and LLM
    dependencies overridden.
    """

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_llm_service] = lambda: fake_llm
    rate_limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    rate_limiter.reset()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

AUTH_HEADERS = {
    "X-User-Id": "test-user-1",
    "X-User-Email": "test1@example.com",
    "X-User-Name": "Test User 1",
}

AUTH_HEADERS_USER2 = {
    "X-User-Id": "test-user-2",
    "X-User-Email": "test2@example.com",
    "X-User-Name": "Test User 2",
}

AUTH_HEADERS_USER3 = {
    "X-User-Id": "test-user-3",
    "X-User-Email": "test3@example.com",
    "X-User-Name": "Test User 3",
}


async def make_pro(db: AsyncSession, headers: Dict[str, str]) -> User:
    """Create (or upgrade) the header's user on the Pro tier."""
    user = await db.get(User, headers["X-User-Id"])
    if user is None:
        user = User(
            id=headers["X-User-Id"],
            email=headers["X-User-Email"],
            name=headers["X-User-Name"],
            display_name=headers["X-User-Name"],
        )
        db.add(user)
    user.subscription_tier = SubscriptionTier.PRO
    await db.flush()
    return user


MC_QUESTIONS = [
    {
        "type": "multiple_choice",
        "question": "What is 2 + 2?",
        "options": ["3", "4", "5", "22"],
        "correct": 1,
        "explanation": "Basic addition.",
    },
    {
        "type": "multiple_choice",
        "question": "Which planet is known as the red planet?",
        "options": ["Venus", "Mars", "Jupiter", "Mercury"],
        "correct": 1,
    },
    {
        "type": "open_ended",
        "question": "What is the boiling point of water in Celsius?",
        "expected_answers": ["100"],
        "answer_format": "number",
    },
]


async def create_room_with_session(
    client: AsyncClient,
    guests: Sequence[Dict[str, str]] = (AUTH_HEADERS_USER2,),
    difficulty: str = "medium",
    questions: Sequence[Dict[str, Any]] = tuple(MC_QUESTIONS),
) -> Dict[str, Any]:
    """Host (user 1) creates a room, guests join, and a session gets questions."""
    room = await client.post(
        "/api/rooms",
        json={"name": "Battle Room", "difficulty": difficulty, "topic": "General"},
        headers=AUTH_HEADERS,
    )
    assert room.status_code == 201, room.text
    room_data = room.json()

    for guest in guests:
        joined = await client.post(
            "/api/rooms/join", json={"room_code": room_data["room_code"]}, headers=guest
        )
        assert joined.status_code == 200, joined.text

    session = await client.post(
        "/api/sessions", json={"room_id": room_data["id"]}, headers=AUTH_HEADERS
    )
    assert session.status_code == 201, session.text
    session_id = session.json()["id"]

    resp = await client.post(
        f"/api/sessions/{session_id}/questions",
        json={"questions": list(questions)},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    return {"room": room_data, "session_id": session_id}
