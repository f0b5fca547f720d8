"""Tests for player stats, rank info and leaderboards."""
import pytest
from httpx import AsyncClient

from tests.conftest import AUTH_HEADERS, AUTH_HEADERS_USER2, AUTH_HEADERS_USER3


async def _solo(client: AsyncClient, headers, correct: int, total: int = 5):
    resp = await client.post(
        "/api/results/singleplayer",
        json={"total_questions": total, "correct_answers": correct},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text


@pytest.mark.asyncio
async def test_stats_created_on_first_access(client: AsyncClient):
    resp = await client.get("/api/stats/me", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    data = resp.json()
    assert data["user_id"] == "test-user-1"
    assert data["xp"] == 0
    assert data["level"] == 1
    assert data["rank_info"]["rank"] == "Bronze"
    assert data["rank_info"]["next_rank"] == "Silver"


@pytest.mark.asyncio
async def test_rank_endpoint(client: AsyncClient):
    await _solo(client, AUTH_HEADERS, 5)
    data = (await client.get("/api/stats/rank", headers=AUTH_HEADERS)).json()
    assert data["xp"] == 100
    assert data["xp_to_next_level"] == 900
    assert data["title"] == "Bronze Scholar (Level 1)"


@pytest.mark.asyncio
async def test_leaderboard_orders_by_xp(client: AsyncClient):
    await _solo(client, AUTH_HEADERS, 2)
    await _solo(client, AUTH_HEADERS_USER2, 5)
    await _solo(client, AUTH_HEADERS_USER3, 4)

    board = (await client.get("/api/stats/leaderboard", headers=AUTH_HEADERS)).json()
    assert [e["user_id"] for e in board] == ["test-user-2", "test-user-3", "test-user-1"]
    assert [e["rank"] for e in board] == [1, 2, 3]
    assert board[0]["display_name"] == "Test User 2"
    assert board[0]["rank_name"] == "Bronze"

    top = (await client.get("/api/stats/leaderboard?limit=1", headers=AUTH_HEADERS)).json()
    assert [e["user_id"] for e in top] == ["test-user-2"]


@pytest.mark.asyncio
async def test_leaderboard_preview_is_capped(client: AsyncClient):
    for i in range(7):
        headers = {"X-User-Id": f"player-{i}", "X-User-Email": f"p{i}@example.com"}
        await _solo(client, headers, i % 6)

    preview = (await client.get("/api/stats/leaderboard/preview", headers=AUTH_HEADERS)).json()
    assert len(preview) == 5
    xps = [e["xp"] for e in preview]
    assert xps == sorted(xps, reverse=True)
