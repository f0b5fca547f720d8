"""Tests for quiz generation, duplicate avoidance, evaluation and review."""
import pytest
from httpx import AsyncClient

from tests.conftest import (
    AUTH_HEADERS,
    AUTH_HEADERS_USER2,
    AUTH_HEADERS_USER3,
    create_room_with_session,
)


async def _generate(client: AsyncClient, headers=None, **body):
    payload = {"topic": "Volcanoes", "total_questions": 3, **body}
    return await client.post("/api/generate/quiz", json=payload, headers=headers or AUTH_HEADERS)


@pytest.mark.asyncio
async def test_generate_quiz(client: AsyncClient, fake_llm):
    resp = await _generate(client, difficulty="hard", education_level="high school")
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["success"] is True
    assert data["difficulty"] == "hard"
    assert len(data["topic_hash"]) == 32
    assert len(data["questions"]) == 3
    assert data["duplicates_removed"] == 0
    assert data["questions"][0]["options"] == ["alpha", "beta", "gamma", "delta"]
    assert fake_llm.calls[0]["avoid_questions"] == []


@pytest.mark.asyncio
async def test_repeat_generation_avoids_served_questions(client: AsyncClient, fake_llm):
    first = (await _generate(client)).json()

    resp = await _generate(client)
    assert resp.status_code == 200
    data = resp.json()
    assert data["questions"] == []
    assert data["duplicates_removed"] == 3
    assert set(fake_llm.calls[1]["avoid_questions"]) == {q["question"] for q in first["questions"]}


@pytest.mark.asyncio
async def test_duplicate_avoidance_can_be_disabled(client: AsyncClient):
    await _generate(client)
    data = (await _generate(client, avoid_duplicates=False)).json()
    assert len(data["questions"]) == 3
    assert data["duplicates_removed"] == 0


@pytest.mark.asyncio
async def test_history_is_per_user(client: AsyncClient):
    await _generate(client)
    data = (await _generate(client, headers=AUTH_HEADERS_USER2)).json()
    assert len(data["questions"]) == 3


@pytest.mark.asyncio
async def test_free_question_limit(client: AsyncClient):
    resp = await _generate(client, total_questions=12)
    assert resp.status_code == 403
    assert resp.json()["detail"]["requires_pro"] is True


@pytest.mark.asyncio
async def test_llm_failure_returns_502(client: AsyncClient, fake_llm):
    fake_llm.fail = True
    resp = await _generate(client)
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_generate_from_document(client: AsyncClient, fake_llm):
    upload = await client.post(
        "/api/documents/upload",
        headers=AUTH_HEADERS,
        files={"file": ("cells.md", b"# Cells\n\nThe mitochondria is the powerhouse of the cell.", "text/markdown")},
    )
    doc_id = upload.json()["id"]

    resp = await _generate(client, topic="Cells", document_id=doc_id)
    assert resp.status_code == 200
    assert "powerhouse" in fake_llm.calls[-1]["source_text"]

    resp = await _generate(client, topic="Cells", document_id=doc_id, headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_generate_into_session(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]

    resp = await _generate(client, session_id=session_id, total_questions=2)
    assert resp.status_code == 200
    assert resp.json()["session_id"] == session_id

    questions = (await client.get(f"/api/sessions/{session_id}/questions", headers=AUTH_HEADERS_USER2)).json()
    assert [q["idx"] for q in questions["questions"]] == [0, 1]
    assert questions["questions"][0]["question"].startswith("Volcanoes question number 1")


@pytest.mark.asyncio
async def test_generate_into_session_permissions(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]

    resp = await _generate(client, session_id=session_id, headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 403

    resp = await _generate(client, session_id=session_id, headers=AUTH_HEADERS_USER3)
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_evaluate_multiple_choice(client: AsyncClient, fake_llm):
    resp = await client.post(
        "/api/generate/evaluate",
        json={
            "question": {"type": "multiple_choice", "options": ["a", "b", "c"], "correct": 2},
            "user_answer": 2,
        },
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json() == {"is_correct": True, "used_llm": False, "confidence": 1.0}
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_evaluate_open_ended_asks_llm_when_fuzzy_match_fails(client: AsyncClient, fake_llm):
    resp = await client.post(
        "/api/generate/evaluate",
        json={
            "question": {
                "type": "open_ended",
                "question": "Why do leaves look green?",
                "expected_answers": ["chlorophyll reflects green light"],
            },
            "user_answer": "the pigment bounces back that colour",
        },
        headers=AUTH_HEADERS,
    )
    data = resp.json()
    assert data["is_correct"] is True
    assert data["used_llm"] is True
    assert data["confidence"] == 0.9


@pytest.mark.asyncio
async def test_evaluate_numeric_never_uses_llm(client: AsyncClient, fake_llm):
    resp = await client.post(
        "/api/generate/evaluate",
        json={
            "question": {"type": "open_ended", "expected_answers": ["42"], "answer_format": "number"},
            "user_answer": "17",
        },
        headers=AUTH_HEADERS,
    )
    assert resp.json()["is_correct"] is False
    assert resp.json()["used_llm"] is False
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_evaluate_falls_back_when_llm_fails(client: AsyncClient, fake_llm):
    fake_llm.fail = True
    resp = await client.post(
        "/api/generate/evaluate",
        json={
            "question": {"type": "open_ended", "expected_answers": ["osmosis"]},
            "user_answer": "diffusion",
        },
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["is_correct"] is False
    assert resp.json()["used_llm"] is False


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_review_lists_missed_session_questions(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]
    await client.post(
        f"/api/sessions/{session_id}/answers",
        json={"question_idx": 0, "answer": 3},
        headers=AUTH_HEADERS_USER2,
    )

    review = (await client.get("/api/generate/review?topic=General", headers=AUTH_HEADERS_USER2)).json()
    assert [w["question_text"] for w in review] == ["What is 2 + 2?"]
    assert review[0]["correct_answer"] == "4"
    assert review[0]["wrong_count"] == 1

    assert (await client.get("/api/generate/review?topic=General", headers=AUTH_HEADERS)).json() == []
