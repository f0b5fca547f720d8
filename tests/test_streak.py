"""Tests for the daily study streak."""
from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from app.services.streak import build_streak_info, calculate_streak
from tests.conftest import AUTH_HEADERS

TODAY = date(2026, 3, 15)


def _days_ago(*offsets):
    return [TODAY - timedelta(days=n) for n in offsets]


def test_consecutive_days():
    assert calculate_streak(_days_ago(0, 1, 2), TODAY) == 3


def test_no_activity():
    assert calculate_streak([], TODAY) == 0


def test_one_missed_day_is_forgiven():
    assert calculate_streak(_days_ago(0, 2, 4), TODAY) == 3
    assert calculate_streak(_days_ago(2), TODAY) == 1


def test_two_missed_days_break_the_streak():
    assert calculate_streak(_days_ago(0, 3, 4), TODAY) == 1
    assert calculate_streak(_days_ago(3, 4), TODAY) == 0


def test_duplicates_and_future_dates_are_ignored():
    dates = _days_ago(0, 0, 1) + [TODAY + timedelta(days=1)]
    assert calculate_streak(dates, TODAY) == 2


def test_streak_info():
    info = build_streak_info(_days_ago(1, 2), TODAY, stored_longest=5)
    assert info.current_streak == 2
    assert info.longest_streak == 5
    assert info.last_activity_date == TODAY - timedelta(days=1)
    assert info.is_active_today is False
    assert info.days_until_break == 1


def test_streak_info_when_broken():
    info = build_streak_info(_days_ago(10), TODAY)
    assert info.current_streak == 0
    assert info.days_until_break == 0


@pytest.mark.asyncio
async def test_streak_endpoint(client: AsyncClient):
    resp = await client.get("/api/stats/streak", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert resp.json()["current_streak"] == 0

    await client.post(
        "/api/results/singleplayer",
        json={"total_questions": 2, "correct_answers": 1},
        headers=AUTH_HEADERS,
    )
    data = (await client.get("/api/stats/streak", headers=AUTH_HEADERS)).json()
    assert data["current_streak"] == 1
    assert data["longest_streak"] == 1
    assert data["is_active_today"] is True

    stats = (await client.get("/api/stats/me", headers=AUTH_HEADERS)).json()
    assert stats["daily_streak"] == 1
