"""Tests for multiplayer result verification, tie ranking, XP and solo results."""
import pytest
from httpx import AsyncClient

from tests.conftest import (
    AUTH_HEADERS,
    AUTH_HEADERS_USER2,
    AUTH_HEADERS_USER3,
    create_room_with_session,
)


async def _play(client: AsyncClient, session_id: int, headers, answers, time_taken=5.0):
    for idx, answer in enumerate(answers):
        resp = await client.post(
            f"/api/sessions/{session_id}/answers",
            json={"question_idx": idx, "answer": answer, "time_taken": time_taken},
            headers=headers,
        )
        assert resp.status_code == 201, resp.text


async def _finished_battle(client: AsyncClient) -> int:
    """Users 1 and 2 score 3/3, user 3 scores 1/3."""
    setup = await create_room_with_session(client, guests=(AUTH_HEADERS_USER2, AUTH_HEADERS_USER3))
    session_id = setup["session_id"]
    await _play(client, session_id, AUTH_HEADERS, [1, 1, "100"])
    await _play(client, session_id, AUTH_HEADERS_USER2, [1, "Mars", "100"])
    await _play(client, session_id, AUTH_HEADERS_USER3, [0, 0, "100"])
    return session_id


@pytest.mark.asyncio
async def test_multiplayer_ties_share_rank(client: AsyncClient):
    session_id = await _finished_battle(client)

    resp = await client.post(
        "/api/results/multiplayer", json={"session_id": session_id}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["xp_awarded"] is True
    assert data["message"] == "Results recorded for 3 player(s)."

    by_user = {r["user_id"]: r for r in data["results"]}
    assert by_user["test-user-1"]["rank"] == 1
    assert by_user["test-user-2"]["rank"] == 1
    assert by_user["test-user-3"]["rank"] == 2
    assert by_user["test-user-1"]["score"] == 100.0
    assert by_user["test-user-3"]["correct_answers"] == 1
    assert by_user["test-user-3"]["questions_answered"] == 3


@pytest.mark.asyncio
async def test_multiplayer_xp_breakdown(client: AsyncClient):
    session_id = await _finished_battle(client)
    resp = await client.post(
        "/api/results/multiplayer", json={"session_id": session_id}, headers=AUTH_HEADERS
    )
    by_user = {r["user_id"]: r for r in resp.json()["results"]}

    winner = by_user["test-user-1"]["xp_breakdown"]
    # medium difficulty, perfect, 5 s average, no prior streak, first place
    assert winner == {
        "base_xp": 150,
        "speed_bonus": 50,
        "perfect_score_bonus": 100,
        "streak_bonus": 0,
        "rank_bonus": 200,
        "total_xp": 500,
    }
    assert by_user["test-user-1"]["xp_earned"] == 500
    assert by_user["test-user-3"]["xp_breakdown"]["rank_bonus"] == 150
    assert by_user["test-user-3"]["xp_breakdown"]["perfect_score_bonus"] == 0


@pytest.mark.asyncio
async def test_multiplayer_updates_stats(client: AsyncClient):
    session_id = await _finished_battle(client)
    await client.post("/api/results/multiplayer", json={"session_id": session_id}, headers=AUTH_HEADERS)

    winner = (await client.get("/api/stats/me", headers=AUTH_HEADERS)).json()
    assert winner["xp"] == 500
    assert winner["total_games"] == 1
    assert winner["total_wins"] == 1
    assert winner["win_streak"] == 1
    assert winner["total_questions_answered"] == 3
    assert winner["accuracy"] == 100.0

    loser = (await client.get("/api/stats/me", headers=AUTH_HEADERS_USER3)).json()
    assert loser["total_games"] == 1
    assert loser["total_wins"] == 0
    assert loser["total_losses"] == 1
    assert loser["win_streak"] == 0


@pytest.mark.asyncio
async def test_multiplayer_completion_is_idempotent(client: AsyncClient):
    session_id = await _finished_battle(client)
    await client.post("/api/results/multiplayer", json={"session_id": session_id}, headers=AUTH_HEADERS)

    resp = await client.post(
        "/api/results/multiplayer", json={"session_id": session_id}, headers=AUTH_HEADERS_USER2
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["xp_awarded"] is False
    assert "already completed" in data["message"]
    assert len(data["results"]) == 3

    stats = (await client.get("/api/stats/me", headers=AUTH_HEADERS_USER2)).json()
    assert stats["total_games"] == 1


@pytest.mark.asyncio
async def test_session_is_closed_after_results(client: AsyncClient):
    session_id = await _finished_battle(client)
    await client.post("/api/results/multiplayer", json={"session_id": session_id}, headers=AUTH_HEADERS)

    session = (await client.get(f"/api/sessions/{session_id}", headers=AUTH_HEADERS)).json()
    assert session["status"] == "complete"
    assert session["ended_at"] is not None

    resp = await client.post(
        f"/api/sessions/{session_id}/answers",
        json={"question_idx": 0, "answer": 1},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_reported_scores_do_not_override_stored_answers(client: AsyncClient):
    session_id = await _finished_battle(client)
    resp = await client.post(
        "/api/results/multiplayer",
        json={
            "session_id": session_id,
            "player_results": [
                {"user_id": "test-user-3", "score": 100, "questions_answered": 3, "correct_answers": 3},
                {"user_id": "intruder", "score": 100, "questions_answered": 3, "correct_answers": 3},
            ],
        },
        headers=AUTH_HEADERS,
    )
    by_user = {r["user_id"]: r for r in resp.json()["results"]}
    assert "intruder" not in by_user
    assert by_user["test-user-3"]["rank"] == 2
    assert by_user["test-user-3"]["correct_answers"] == 1


@pytest.mark.asyncio
async def test_multiplayer_requires_participant(client: AsyncClient):
    setup = await create_room_with_session(client)
    resp = await client.post(
        "/api/results/multiplayer", json={"session_id": setup["session_id"]}, headers=AUTH_HEADERS_USER3
    )
    assert resp.status_code == 403

    resp = await client.post(
        "/api/results/multiplayer", json={"session_id": 999999}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_multiplayer_without_answers(client: AsyncClient):
    setup = await create_room_with_session(client)
    resp = await client.post(
        "/api/results/multiplayer", json={"session_id": setup["session_id"]}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_win_streak_bonus_applies_next_game(client: AsyncClient):
    for _ in range(2):
        setup = await create_room_with_session(client, guests=(AUTH_HEADERS_USER2,))
        session_id = setup["session_id"]
        await _play(client, session_id, AUTH_HEADERS, [1, 1, "100"])
        await _play(client, session_id, AUTH_HEADERS_USER2, [0, 0, "7"])
        resp = await client.post(
            "/api/results/multiplayer", json={"session_id": session_id}, headers=AUTH_HEADERS
        )

    by_user = {r["user_id"]: r for r in resp.json()["results"]}
    assert by_user["test-user-1"]["xp_breakdown"]["streak_bonus"] == 10

    stats = (await client.get("/api/stats/me", headers=AUTH_HEADERS)).json()
    assert stats["win_streak"] == 2
    assert stats["best_streak"] == 2


# ---------------------------------------------------------------------------
# Singleplayer
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_singleplayer_result(client: AsyncClient):
    resp = await client.post(
        "/api/results/singleplayer",
        json={
            "total_questions": 4,
            "correct_answers": 3,
            "topic": "Chemistry",
            "difficulty": "hard",
            "time_spent": 60,
            "answers": [
                {"question": "What is H2O?", "user_answer": "Salt", "is_correct": False,
                 "correct_answer": "Water", "question_type": "multiple_choice"},
            ],
        },
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["xp_earned"] == 53
    assert data["total_xp"] == 53
    assert data["accuracy"] == 75.0
    assert data["leveled_up"] is False
    assert data["total_questions_answered"] == 4

    stats = (await client.get("/api/stats/me", headers=AUTH_HEADERS)).json()
    assert stats["total_games"] == 0
    assert stats["total_wins"] == 0

    recent = (await client.get("/api/results/recent", headers=AUTH_HEADERS)).json()
    assert len(recent) == 1
    assert recent[0]["is_multiplayer"] is False
    assert recent[0]["rank"] is None
    assert recent[0]["topic"] == "Chemistry"

    review = (await client.get("/api/generate/review?topic=Chemistry&difficulty=hard", headers=AUTH_HEADERS)).json()
    assert [w["question_text"] for w in review] == ["What is H2O?"]


@pytest.mark.asyncio
async def test_singleplayer_rejects_impossible_counts(client: AsyncClient):
    resp = await client.post(
        "/api/results/singleplayer",
        json={"total_questions": 3, "correct_answers": 4},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_singleplayer_unknown_document(client: AsyncClient):
    resp = await client.post(
        "/api/results/singleplayer",
        json={"total_questions": 3, "correct_answers": 1, "document_id": 424242},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_recent_results_newest_first(client: AsyncClient):
    for correct in (1, 2, 3):
        await client.post(
            "/api/results/singleplayer",
            json={"total_questions": 3, "correct_answers": correct},
            headers=AUTH_HEADERS,
        )
    recent = (await client.get("/api/results/recent?limit=2", headers=AUTH_HEADERS)).json()
    assert [r["correct_answers"] for r in recent] == [3, 2]
