"""Tests for GET /api/health and the API root."""
import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient):
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["database"] == "ok"
    assert data["llm"] == "ok"
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_health_degraded_when_llm_down(client: AsyncClient, fake_llm):
    fake_llm.healthy = False
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["llm"] == "error"
    assert data["status"] == "degraded"


@pytest.mark.asyncio
async def test_health_reports_unconfigured_llm(client: AsyncClient, fake_llm):
    fake_llm.is_configured = False
    resp = await client.get("/api/health/")
    assert resp.json()["llm"] == "not_configured"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "Brain Battle API"
    assert data["endpoints"]["rooms"] == "/api/rooms"


@pytest.mark.asyncio
async def test_responses_carry_process_time(client: AsyncClient):
    resp = await client.get("/")
    assert resp.headers["X-Process-Time"].endswith("ms")
