"""Tests for quiz session lifecycle, questions, answers and cheat events."""
import pytest
from httpx import AsyncClient

from tests.conftest import (
    AUTH_HEADERS,
    AUTH_HEADERS_USER2,
    AUTH_HEADERS_USER3,
    MC_QUESTIONS,
    create_room_with_session,
)


async def _answer(client: AsyncClient, session_id: int, idx: int, answer, headers, time_taken=None):
    body = {"question_idx": idx, "answer": answer}
    if time_taken is not None:
        body["time_taken"] = time_taken
    return await client.post(f"/api/sessions/{session_id}/answers", json=body, headers=headers)


@pytest.mark.asyncio
async def test_create_session_copies_room_settings(client: AsyncClient):
    room = await client.post(
        "/api/rooms",
        json={"name": "History Hour", "difficulty": "easy", "time_limit": 45, "total_questions": 7, "topic": "Rome"},
        headers=AUTH_HEADERS,
    )
    room_id = room.json()["id"]

    resp = await client.post("/api/sessions", json={"room_id": room_id}, headers=AUTH_HEADERS)
    assert resp.status_code == 201
    data = resp.json()
    assert data["room_id"] == room_id
    assert data["status"] == "waiting"
    assert data["difficulty"] == "easy"
    assert data["time_limit"] == 45
    assert data["total_questions"] == 7
    assert data["topic"] == "Rome"
    assert data["session_name"] == "History Hour - Rome"
    assert data["question_count"] == 0


@pytest.mark.asyncio
async def test_only_host_creates_sessions(client: AsyncClient):
    room = (await client.post("/api/rooms", json={"name": "R"}, headers=AUTH_HEADERS)).json()
    await client.post("/api/rooms/join", json={"room_code": room["room_code"]}, headers=AUTH_HEADERS_USER2)

    resp = await client.post("/api/sessions", json={"room_id": room["id"]}, headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 403

    resp = await client.post("/api/sessions", json={"room_id": room["id"]}, headers=AUTH_HEADERS_USER3)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_questions_are_stored_in_order(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]

    resp = await client.get(f"/api/sessions/{session_id}/questions", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 200
    questions = resp.json()["questions"]
    assert [q["idx"] for q in questions] == [0, 1, 2]
    assert questions[0]["question"] == MC_QUESTIONS[0]["question"]
    assert questions[0]["correct"] == 1
    assert questions[2]["type"] == "open_ended"

    resp = await client.get(f"/api/sessions/{session_id}", headers=AUTH_HEADERS)
    assert resp.json()["question_count"] == 3
    assert resp.json()["total_questions"] == 3


@pytest.mark.asyncio
async def test_replacing_questions_resets_indices(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]

    resp = await client.post(
        f"/api/sessions/{session_id}/questions",
        json={"questions": [MC_QUESTIONS[1]]},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    assert [q["idx"] for q in resp.json()["questions"]] == [0]


@pytest.mark.asyncio
async def test_guest_cannot_set_questions(client: AsyncClient):
    setup = await create_room_with_session(client)
    resp = await client.post(
        f"/api/sessions/{setup['session_id']}/questions",
        json={"questions": MC_QUESTIONS},
        headers=AUTH_HEADERS_USER2,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_invalid_question_is_rejected(client: AsyncClient):
    setup = await create_room_with_session(client)
    resp = await client.post(
        f"/api/sessions/{setup['session_id']}/questions",
        json={"questions": [{"type": "multiple_choice", "question": "Q?", "options": ["a", "b"], "correct": 5}]},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_start_session_activates_room(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]

    resp = await client.post(f"/api/sessions/{session_id}/start", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 403

    resp = await client.post(f"/api/sessions/{session_id}/start", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["status"] == "active"
    assert resp.json()["started_at"] is not None

    resp = await client.get(f"/api/rooms/{setup['room']['id']}", headers=AUTH_HEADERS)
    assert resp.json()["status"] == "active"


@pytest.mark.asyncio
async def test_submit_answers(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]

    resp = await _answer(client, session_id, 0, 1, AUTH_HEADERS, time_taken=4.5)
    assert resp.status_code == 201
    data = resp.json()
    assert data["is_correct"] is True
    assert data["explanation"] == "Basic addition."

    resp = await _answer(client, session_id, 1, "venus", AUTH_HEADERS_USER2)
    assert resp.json()["is_correct"] is False

    resp = await _answer(client, session_id, 2, "about 101 degrees", AUTH_HEADERS_USER2)
    assert resp.json()["is_correct"] is True


@pytest.mark.asyncio
async def test_duplicate_answer_conflicts(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]

    await _answer(client, session_id, 0, 1, AUTH_HEADERS)
    resp = await _answer(client, session_id, 0, 2, AUTH_HEADERS)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_answer_unknown_question(client: AsyncClient):
    setup = await create_room_with_session(client)
    resp = await _answer(client, setup["session_id"], 10, 1, AUTH_HEADERS)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_cheat_event_recorded(client: AsyncClient):
    setup = await create_room_with_session(client)
    session_id = setup["session_id"]

    resp = await client.post(
        f"/api/sessions/{session_id}/cheat-events",
        json={"violation_type": "tab_switch", "duration_ms": 3400},
        headers=AUTH_HEADERS_USER2,
    )
    assert resp.status_code == 201
    event = resp.json()
    assert event["event_type"] == "cheat_detected"
    assert event["payload"]["violation_type"] == "tab_switch"
    assert event["payload"]["duration_seconds"] == 3
    assert event["payload"]["display_name"] == "Test User 2"

    resp = await client.get(f"/api/sessions/{session_id}/events", headers=AUTH_HEADERS)
    assert [e["id"] for e in resp.json()] == [event["id"]]


@pytest.mark.asyncio
async def test_cheat_event_from_outsider_is_forbidden(client: AsyncClient):
    setup = await create_room_with_session(client)
    resp = await client.post(
        f"/api/sessions/{setup['session_id']}/cheat-events",
        json={"violation_type": "window_blur"},
        headers=AUTH_HEADERS_USER3,
    )
    assert resp.status_code == 403

    resp = await client.post(
        "/api/sessions/999999/cheat-events",
        json={"violation_type": "window_blur"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_unknown_violation_type_is_rejected(client: AsyncClient):
    setup = await create_room_with_session(client)
    resp = await client.post(
        f"/api/sessions/{setup['session_id']}/cheat-events",
        json={"violation_type": "screenshot"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 422
