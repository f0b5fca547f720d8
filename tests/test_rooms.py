"""Tests for room CRUD, joining by code and seat accounting."""
import pytest
from httpx import AsyncClient

from tests.conftest import AUTH_HEADERS, AUTH_HEADERS_USER2, AUTH_HEADERS_USER3, make_pro


async def _create_room(client: AsyncClient, headers=None, **overrides) -> dict:
    body = {"name": "Quiz Night", **overrides}
    resp = await client.post("/api/rooms", json=body, headers=headers or AUTH_HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_create_room(client: AsyncClient):
    data = await _create_room(client, difficulty="hard", topic="Biology")
    assert data["name"] == "Quiz Night"
    assert data["difficulty"] == "hard"
    assert data["status"] == "waiting"
    assert data["current_players"] == 1
    assert len(data["room_code"]) == 6
    assert data["room_code"] == data["room_code"].upper() and data["room_code"].isalnum()

    [host] = data["members"]
    assert host["user_id"] == AUTH_HEADERS["X-User-Id"]
    assert host["is_host"] is True
    assert host["is_ready"] is True
    assert host["display_name"] == "Test User 1"


@pytest.mark.asyncio
async def test_free_user_cannot_host_large_room(client: AsyncClient):
    resp = await client.post(
        "/api/rooms", json={"name": "Big Room", "max_players": 10}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 403
    assert resp.json()["detail"]["requires_pro"] is True


@pytest.mark.asyncio
async def test_pro_user_can_host_large_room(client: AsyncClient, db_session):
    await make_pro(db_session, AUTH_HEADERS)
    data = await _create_room(client, max_players=10)
    assert data["max_players"] == 10


@pytest.mark.asyncio
async def test_list_rooms_returns_only_own_rooms(client: AsyncClient):
    await _create_room(client, name="Room A")
    await _create_room(client, name="Room B")
    await _create_room(client, headers=AUTH_HEADERS_USER2, name="Room C")

    resp = await client.get("/api/rooms", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    names = {r["name"] for r in resp.json()}
    assert names == {"Room A", "Room B"}

    resp = await client.get("/api/rooms", headers=AUTH_HEADERS_USER2)
    assert {r["name"] for r in resp.json()} == {"Room C"}


@pytest.mark.asyncio
async def test_public_rooms_exclude_private(client: AsyncClient):
    await _create_room(client, name="Open Room")
    await _create_room(client, name="Secret Room", is_private=True)

    resp = await client.get("/api/rooms/public", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 200
    names = {r["name"] for r in resp.json()}
    assert "Open Room" in names
    assert "Secret Room" not in names


@pytest.mark.asyncio
async def test_join_room_by_code(client: AsyncClient):
    room = await _create_room(client)

    resp = await client.post(
        "/api/rooms/join", json={"room_code": room["room_code"].lower()}, headers=AUTH_HEADERS_USER2
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["message"] == "Joined room successfully"
    assert data["room"]["current_players"] == 2
    guest = [m for m in data["room"]["members"] if m["user_id"] == "test-user-2"][0]
    assert guest["is_host"] is False
    assert guest["is_ready"] is False

    # Now visible to the guest
    resp = await client.get(f"/api/rooms/{room['id']}", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_join_twice_is_idempotent(client: AsyncClient):
    room = await _create_room(client)
    await client.post("/api/rooms/join", json={"room_code": room["room_code"]}, headers=AUTH_HEADERS_USER2)

    resp = await client.post(
        "/api/rooms/join", json={"room_code": room["room_code"]}, headers=AUTH_HEADERS_USER2
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "User is already a member"
    assert resp.json()["room"]["current_players"] == 2


@pytest.mark.asyncio
async def test_join_unknown_code_returns_404(client: AsyncClient):
    resp = await client.post("/api/rooms/join", json={"room_code": "ZZZZZZ"}, headers=AUTH_HEADERS)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_join_full_room_is_rejected(client: AsyncClient):
    room = await _create_room(client, max_players=2)
    resp = await client.post(
        "/api/rooms/join", json={"room_code": room["room_code"]}, headers=AUTH_HEADERS_USER2
    )
    assert resp.status_code == 200

    resp = await client.post(
        "/api/rooms/join", json={"room_code": room["room_code"]}, headers=AUTH_HEADERS_USER3
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Room is full"

    resp = await client.get(f"/api/rooms/{room['id']}", headers=AUTH_HEADERS)
    assert resp.json()["current_players"] == 2


@pytest.mark.asyncio
async def test_free_user_cannot_join_large_pro_room(client: AsyncClient, db_session):
    await make_pro(db_session, AUTH_HEADERS)
    room = await _create_room(client, max_players=8)

    resp = await client.post(
        "/api/rooms/join", json={"room_code": room["room_code"]}, headers=AUTH_HEADERS_USER2
    )
    assert resp.status_code == 403
    assert resp.json()["detail"]["requires_pro"] is True


@pytest.mark.asyncio
async def test_leave_room_frees_seat(client: AsyncClient):
    room = await _create_room(client)
    await client.post("/api/rooms/join", json={"room_code": room["room_code"]}, headers=AUTH_HEADERS_USER2)

    resp = await client.post(f"/api/rooms/{room['id']}/leave", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    resp = await client.get(f"/api/rooms/{room['id']}", headers=AUTH_HEADERS)
    data = resp.json()
    assert data["current_players"] == 1
    assert [m["user_id"] for m in data["members"]] == ["test-user-1"]


@pytest.mark.asyncio
async def test_host_cannot_leave(client: AsyncClient):
    room = await _create_room(client)
    resp = await client.post(f"/api/rooms/{room['id']}/leave", headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_delete_room(client: AsyncClient):
    room = await _create_room(client, name="Delete Me")

    resp = await client.delete(f"/api/rooms/{room['id']}", headers=AUTH_HEADERS)
    assert resp.status_code == 204

    resp = await client.get(f"/api/rooms/{room['id']}", headers=AUTH_HEADERS)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_guest_cannot_delete_room(client: AsyncClient):
    room = await _create_room(client)
    await client.post("/api/rooms/join", json={"room_code": room["room_code"]}, headers=AUTH_HEADERS_USER2)

    resp = await client.delete(f"/api/rooms/{room['id']}", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 404
