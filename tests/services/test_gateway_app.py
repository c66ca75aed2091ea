# tests/services/test_gateway_app.py
"""
Тесты приложения шлюза реального времени (HTTP и WebSocket).
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from logiflow.services.realtime_ws.app import create_app
from logiflow.services.realtime_ws.bridge import WELCOME_MESSAGE
from logiflow.services.realtime_ws.identity import TokenVerifier

SECRET = "logiflow-test-secret-0123456789abcdef"


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(secret=SECRET, algorithm="HS256")


@pytest.fixture
def client(verifier: TokenVerifier, mock_event_bus: AsyncMock):
    app = create_app(verifier=verifier, event_bus=mock_event_bus, manage_infra=False)
    with TestClient(app) as test_client:
        yield test_client


class TestGatewayHttp:
    """Тесты HTTP эндпоинтов."""

    def test_health_degraded_without_consumer(self, client: TestClient) -> None:
        body = client.get("/health").json()

        assert body["service"] == "api-gateway"
        assert body["status"] == "degraded"
        assert body["dependencies"]["rabbitmq"] == "healthy"

    def test_stats_empty(self, client: TestClient) -> None:
        stats = client.get("/stats").json()

        assert stats["active_connections"] == 0
        assert stats["total_messages_sent"] == 0

    def test_broadcast_without_clients(self, client: TestClient) -> None:
        response = client.post("/broadcast", json={"topic": None, "data": {"aviso": "hola"}})

        assert response.status_code == 200
        assert response.json() == {"sent_count": 0}

    def test_broadcast_requires_data(self, client: TestClient) -> None:
        assert client.post("/broadcast", json={"topic": "pedido/creado"}).status_code == 422


class TestGatewayWebSocket:
    """Тесты WebSocket протокола через TestClient."""

    def test_connect_anonymous(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            hello = ws.receive_json()

            assert hello["type"] == "CONNECTED"
            assert hello["message"] == WELCOME_MESSAGE
            assert client.get("/stats").json()["anonymous_connections"] == 1

    def test_connect_with_token(self, client: TestClient, verifier: TokenVerifier) -> None:
        token = verifier.encode({"userId": 7, "username": "ana", "roles": ["ADMIN"]})

        with client.websocket_connect(f"/ws?token={token}") as ws:
            ws.receive_json()
            stats = client.get("/stats").json()

        assert stats["identified_connections"] == 1

    def test_bad_token_still_connects(self, client: TestClient) -> None:
        with client.websocket_connect("/ws?token=garbage") as ws:
            assert ws.receive_json()["type"] == "CONNECTED"

    def test_subscribe_and_receive_broadcast(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "SUBSCRIBE", "topic": "pedido/*"})
            assert ws.receive_json()["type"] == "SUBSCRIBED"

            response = client.post("/broadcast", json={"topic": "pedido/creado", "data": {"codigo": "PED-1"}})
            event = ws.receive_json()

        assert response.json() == {"sent_count": 1}
        assert event["type"] == "EVENT"
        assert event["topic"] == "pedido/creado"
        assert event["data"] == {"codigo": "PED-1"}

    def test_broadcast_to_all(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

            client.post("/broadcast", json={"data": "mantenimiento"})
            message = ws.receive_json()

        assert message["type"] == "BROADCAST"
        assert message["data"] == "mantenimiento"

    def test_malformed_message_keeps_connection(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

            ws.send_text("not json")
            error = ws.receive_json()
            ws.send_json({"type": "PING"})
            pong = ws.receive_json()

        assert error == {"type": "ERROR", "message": "Mensaje inválido"}
        assert pong["type"] == "PONG"

    def test_binary_frame_keeps_connection(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

            ws.send_bytes(b"not json")
            error = ws.receive_json()
            ws.send_bytes(b"\xff\xfe")
            undecodable = ws.receive_json()
            ws.send_json({"type": "PING"})
            pong = ws.receive_json()

        assert error == {"type": "ERROR", "message": "Mensaje inválido"}
        assert undecodable == error
        assert pong["type"] == "PONG"

    def test_binary_subscribe(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

            ws.send_bytes(b'{"type": "SUBSCRIBE", "topic": "factura/*"}')
            reply = ws.receive_json()

        assert reply["type"] == "SUBSCRIBED"
        assert reply["topic"] == "factura/*"

    def test_disconnect_removes_client(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "PING"})
            ws.receive_json()

        stats = client.get("/stats").json()
        assert stats["active_connections"] == 0
        assert stats["total_connections_ever"] == 1
