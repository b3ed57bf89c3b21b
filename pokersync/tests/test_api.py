"""
Tests for API layer.

Tests:
- API service methods
- REST endpoints and error mapping
- WebSocket handshake and broadcast
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from ..api.app import create_app
from ..api.schemas import (
    AddItemRequest,
    CreateSessionRequest,
    ErrorCode,
    ErrorResponse,
    SetCurrentItemRequest,
)
from ..api.service import APIService
from ..config import Settings
from ..session.channel import CLOSE_PROTOCOL_VIOLATION, CLOSE_SESSION_NOT_FOUND


class TestAPIService:
    """Tests for APIService."""

    @pytest.fixture
    def service(self):
        """Create a fresh API service."""
        return APIService()

    def test_create_session(self, service):
        response = service.create_session(CreateSessionRequest(name="Sprint 12", host_name="Alice"))

        snapshot = service.get_session(response.session_id)
        assert snapshot.name == "Sprint 12"
        assert snapshot.host_id == response.host_id
        assert snapshot.users[response.host_id].name == "Alice"

    def test_get_missing_session(self, service):
        response = service.get_session("nope")

        assert isinstance(response, ErrorResponse)
        assert response.error_code == ErrorCode.SESSION_NOT_FOUND

    def test_add_and_focus_item(self, service):
        created = service.create_session(CreateSessionRequest(name="Sprint 12", host_name="Alice"))

        async def scenario():
            item = await service.add_item(created.session_id, AddItemRequest(title="Login"))
            status = await service.set_current_item(created.session_id, SetCurrentItemRequest(item_id=item.item_id))
            return item, status

        item, status = asyncio.run(scenario())

        assert item.title == "Login"
        assert status.status == "success"
        assert service.get_session(created.session_id).current_item_id == item.item_id

    def test_focus_unknown_item(self, service):
        created = service.create_session(CreateSessionRequest(name="Sprint 12", host_name="Alice"))
        response = asyncio.run(service.set_current_item(created.session_id, SetCurrentItemRequest(item_id="nope")))

        assert isinstance(response, ErrorResponse)
        assert response.error_code == ErrorCode.ITEM_NOT_FOUND

    def test_list_sessions(self, service):
        service.create_session(CreateSessionRequest(name="A", host_name="Alice"))
        service.create_session(CreateSessionRequest(name="B", host_name="Bob"))

        summaries = service.list_sessions()
        assert sorted(s.name for s in summaries) == ["A", "B"]
        assert all(s.user_count == 1 for s in summaries)

    def test_card_values_from_settings(self):
        service = APIService(settings=Settings(card_values=("S", "M", "L")))
        created = service.create_session(CreateSessionRequest(name="Sizes", host_name="Alice"))
        authority = service.session_manager.get_authority(created.session_id)
        assert authority.reducer.card_values == ("S", "M", "L")


@pytest.fixture
def client():
    with TestClient(create_app(service=APIService())) as client:
        yield client


def create(client, name="Sprint 12", host_name="Alice"):
    response = client.post("/api/v1/sessions", json={"name": name, "hostName": host_name})
    assert response.status_code == 200
    return response.json()


def identify(name, user_id=None):
    payload = {"displayName": name}
    if user_id is not None:
        payload["userId"] = user_id
    return {"type": "identify", "payload": payload}


class TestRestEndpoints:
    """Tests for HTTP routes."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_and_get(self, client):
        created = create(client)
        response = client.get(f"/api/v1/sessions/{created['sessionId']}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == created["sessionId"]
        assert body["hostId"] == created["hostId"]

    def test_create_validation(self, client):
        assert client.post("/api/v1/sessions", json={"name": "", "hostName": "A"}).status_code == 422
        response = client.post("/api/v1/sessions", json={"name": "   ", "hostName": "A"})
        assert response.status_code == 400
        assert response.json()["errorCode"] == "VALIDATION_ERROR"

    def test_missing_session_is_404(self, client):
        response = client.get("/api/v1/sessions/nope")
        assert response.status_code == 404
        assert response.json()["errorCode"] == "SESSION_NOT_FOUND"

    def test_items(self, client):
        created = create(client)
        base = f"/api/v1/sessions/{created['sessionId']}"

        item = client.post(f"{base}/items", json={"title": "Login"}).json()
        assert item["title"] == "Login"
        assert client.post(f"{base}/current-item", json={"itemId": item["id"]}).status_code == 200
        assert client.post(f"{base}/current-item", json={"itemId": "nope"}).status_code == 404
        assert client.get(base).json()["currentItemId"] == item["id"]

    def test_list_and_delete(self, client):
        created = create(client)
        assert len(client.get("/api/v1/sessions").json()) == 1

        response = client.delete(f"/api/v1/sessions/{created['sessionId']}")
        assert response.json() == {"success": True, "sessionId": created["sessionId"]}
        assert client.get("/api/v1/sessions").json() == []


class TestWebSocket:
    """Tests for the real-time endpoint."""

    def test_host_joins_and_receives_http_changes(self, client):
        created = create(client)
        url = f"/api/v1/sessions/{created['sessionId']}/ws"

        with client.websocket_connect(url) as ws:
            ws.send_json(identify("Alice", created["hostId"]))
            welcome = ws.receive_json()
            assert welcome["type"] == "welcome"
            assert welcome["payload"]["userId"] == created["hostId"]
            assert ws.receive_json()["type"] == "user_joined"

            client.post(f"/api/v1/sessions/{created['sessionId']}/items", json={"title": "Login"})
            added = ws.receive_json()
            assert added["type"] == "item_added"
            assert added["payload"]["item"]["title"] == "Login"

    def test_vote_round(self, client):
        created = create(client)
        url = f"/api/v1/sessions/{created['sessionId']}/ws"

        with client.websocket_connect(url) as alice, client.websocket_connect(url) as bob:
            alice.send_json(identify("Alice", created["hostId"]))
            assert [alice.receive_json()["type"] for _ in range(2)] == ["welcome", "user_joined"]

            bob.send_json(identify("Bob"))
            bob_id = bob.receive_json()["payload"]["userId"]
            assert bob.receive_json()["type"] == "user_joined"
            assert alice.receive_json()["payload"]["user"]["id"] == bob_id

            alice.send_json({"type": "add_item", "payload": {"title": "Login"}})
            item_id = alice.receive_json()["payload"]["item"]["id"]
            bob.receive_json()
            alice.send_json({"type": "set_current_item", "payload": {"itemId": item_id}})
            alice.receive_json()
            bob.receive_json()

            bob.send_json({"type": "vote", "payload": {"itemId": item_id, "token": "8"}})
            submitted = alice.receive_json()
            assert submitted["type"] == "vote_submitted"
            assert set(submitted["payload"]) == {"itemId", "userId", "hasVoted"}
            bob.receive_json()

            alice.send_json({"type": "reveal_votes", "payload": {"itemId": item_id}})
            revealed = bob.receive_json()
            assert revealed["type"] == "votes_revealed"
            assert revealed["payload"]["item"]["votes"] == {bob_id: "8"}

    def test_non_host_command_gets_private_error(self, client):
        created = create(client)
        url = f"/api/v1/sessions/{created['sessionId']}/ws"

        with client.websocket_connect(url) as bob:
            bob.send_json(identify("Bob"))
            bob.receive_json()
            bob.receive_json()
            bob.send_json({"type": "add_item", "payload": {"title": "Sneaky"}})
            error = bob.receive_json()

            assert error["type"] == "error"
            assert error["payload"]["code"] == "NOT_HOST"

    def test_unknown_session_closes(self, client):
        with client.websocket_connect("/api/v1/sessions/nope/ws") as ws:
            ws.send_json(identify("Alice"))
            assert ws.receive_json()["payload"]["code"] == "SESSION_NOT_FOUND"
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == CLOSE_SESSION_NOT_FOUND

    def test_protocol_violation_closes(self, client):
        created = create(client)
        url = f"/api/v1/sessions/{created['sessionId']}/ws"

        with client.websocket_connect(url) as ws:
            ws.send_json(identify("Bob"))
            ws.receive_json()
            ws.receive_json()
            ws.send_text("this is not json")
            assert ws.receive_json()["payload"]["code"] == "PROTOCOL_VIOLATION"
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
            assert exc.value.code == CLOSE_PROTOCOL_VIOLATION
