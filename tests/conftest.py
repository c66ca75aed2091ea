# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketState

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("RABBITMQ_PASSWORD", "guest")
os.environ.setdefault("LOG_FORMAT", "colored")

from logiflow.common.constants import Severity
from logiflow.shared.events.envelope import EventEnvelope
from logiflow.shared.models.notification import (
    MicroserviceCount,
    NotificationRecord,
    NotificationStats,
    SeverityCount,
)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ
# =============================================================================

@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок EventBus с активным соединением."""
    bus = AsyncMock()
    bus.is_connected = True
    bus.exchange_name = "logiflow.events"
    bus.publish_raw = AsyncMock()
    bus.subscribe = AsyncMock()
    bus.unsubscribe = AsyncMock()
    bus.declare_dead_letter = AsyncMock()
    bus.connect_with_retry = AsyncMock(return_value=True)
    bus.health_check = AsyncMock(return_value=True)
    bus.disconnect = AsyncMock()
    return bus


@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок DatabaseManager."""
    db = AsyncMock()
    db.execute = AsyncMock(return_value="OK")
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value=None)
    db.health_check = AsyncMock(return_value=True)
    return db


def make_message(
    body: Any,
    routing_key: str = "pedido.creado",
    message_id: str | None = "msg-1",
) -> MagicMock:
    """Входящее сообщение aio_pika с мок-подтверждениями."""
    message = MagicMock()
    if isinstance(body, (dict, list)):
        body = json.dumps(body)
    message.body = body.encode("utf-8") if isinstance(body, str) else body
    message.routing_key = routing_key
    message.message_id = message_id
    message.processed = False
    message.ack = AsyncMock()
    message.nack = AsyncMock()
    message.reject = AsyncMock()
    return message


# =============================================================================
# ФИКСТУРЫ СОБЫТИЙ
# =============================================================================

@pytest.fixture
def sample_event() -> dict[str, Any]:
    """Конверт события создания заказа в формате провода."""
    return {
        "eventId": "3f9c2a7e-0000-4000-8000-000000000001",
        "eventType": "pedido.creado",
        "microservice": "pedido-service",
        "action": "PEDIDO_CREADO",
        "entityType": "Pedido",
        "entityId": "PED-001",
        "message": "Nuevo pedido PED-001 creado para entrega URBANA",
        "timestamp": "2025-01-15T10:30:00.000Z",
        "severity": "INFO",
        "data": {"pedidoId": 1, "codigo": "PED-001", "estado": "PENDIENTE", "tipoEntrega": "URBANA"},
    }


@pytest.fixture
def sample_envelope(sample_event: dict[str, Any]) -> EventEnvelope:
    return EventEnvelope.model_validate(sample_event)


@pytest.fixture
def sample_pedido() -> dict[str, Any]:
    """Сущность заказа в camelCase."""
    return {
        "id": 1,
        "codigo": "PED-001",
        "clienteId": 10,
        "repartidorId": None,
        "estado": "PENDIENTE",
        "tipoEntrega": "URBANA",
        "direccionOrigen": "Av. Amazonas",
        "direccionDestino": "Av. Shyris",
        "zonaId": 3,
    }


def make_record(
    notification_id: int = 1,
    event_id: str = "evt-1",
    microservice: str = "pedido-service",
    severity: Severity = Severity.INFO,
    processed: bool = False,
    **overrides: Any,
) -> NotificationRecord:
    """Запись уведомления для тестов."""
    now = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
    values: dict[str, Any] = {
        "id": notification_id,
        "event_id": event_id,
        "microservice": microservice,
        "action": "PEDIDO_CREADO",
        "entity_type": "Pedido",
        "entity_id": "PED-001",
        "message": "Nuevo pedido",
        "severity": severity,
        "event_timestamp": now,
        "data": {},
        "processed": processed,
        "processed_at": now if processed else None,
        "created_at": now,
    }
    values.update(overrides)
    return NotificationRecord(**values)


# =============================================================================
# РЕПОЗИТОРИЙ В ПАМЯТИ
# =============================================================================

class InMemoryNotificationRepository:
    """Хранилище уведомлений в памяти с тем же интерфейсом, что и SQL."""

    def __init__(self) -> None:
        self.records: dict[int, NotificationRecord] = {}
        self._next_id = 1
        self.insert_calls = 0

    async def ensure_schema(self) -> None:
        return None

    async def get_by_event_id(self, event_id: str) -> NotificationRecord | None:
        for record in self.records.values():
            if record.event_id == event_id:
                return record
        return None

    async def get_by_id(self, notification_id: int) -> NotificationRecord | None:
        return self.records.get(notification_id)

    async def insert_if_absent(self, envelope: EventEnvelope) -> NotificationRecord | None:
        self.insert_calls += 1
        if await self.get_by_event_id(envelope.event_id) is not None:
            return None

        record = make_record(
            notification_id=self._next_id,
            event_id=envelope.event_id,
            microservice=envelope.microservice or "unknown",
            severity=envelope.severity,
            action=envelope.action,
            entity_type=envelope.entity_type,
            entity_id=envelope.entity_id,
            message=envelope.message,
            event_timestamp=envelope.occurred_at,
            data=dict(envelope.data),
            created_at=datetime.now(timezone.utc),
        )
        self.records[record.id] = record
        self._next_id += 1
        return record

    async def mark_processed(self, notification_id: int) -> NotificationRecord | None:
        record = self.records.get(notification_id)
        if record is None:
            return None
        if not record.processed:
            record = record.model_copy(update={"processed": True, "processed_at": datetime.now(timezone.utc)})
            self.records[notification_id] = record
        return record

    def _newest_first(self) -> list[NotificationRecord]:
        return sorted(self.records.values(), key=lambda r: (r.created_at, r.id), reverse=True)

    async def list_recent(self, limit: int) -> list[NotificationRecord]:
        return self._newest_first()[:limit]

    async def list_by_microservice(self, microservice: str) -> list[NotificationRecord]:
        return [r for r in self._newest_first() if r.microservice == microservice]

    async def list_by_severity(self, severity: str) -> list[NotificationRecord]:
        return [r for r in self._newest_first() if r.severity.value == severity]

    async def list_unprocessed(self) -> list[NotificationRecord]:
        return [r for r in self._newest_first() if not r.processed]

    async def get_statistics(self) -> NotificationStats:
        by_service: dict[str, int] = {}
        by_severity: dict[str, int] = {}
        for record in self.records.values():
            by_service[record.microservice] = by_service.get(record.microservice, 0) + 1
            by_severity[record.severity.value] = by_severity.get(record.severity.value, 0) + 1

        processed = sum(1 for r in self.records.values() if r.processed)
        return NotificationStats(
            total=len(self.records),
            processed=processed,
            pending=len(self.records) - processed,
            by_microservice=[MicroserviceCount(microservice=k, count=v) for k, v in by_service.items()],
            by_severity=[SeverityCount(severity=k, count=v) for k, v in by_severity.items()],
        )


@pytest.fixture
def memory_repository() -> InMemoryNotificationRepository:
    return InMemoryNotificationRepository()


# =============================================================================
# WEBSOCKET
# =============================================================================

class FakeWebSocket:
    """WebSocket, запоминающий отправленные сообщения."""

    def __init__(self, fail_on_send: bool = False, send_delay: float = 0.0) -> None:
        self.client_state = WebSocketState.CONNECTING
        self.accepted = False
        self.fail_on_send = fail_on_send
        self.send_delay = send_delay
        self.sent: list[dict[str, Any]] = []

    async def accept(self) -> None:
        self.accepted = True
        self.client_state = WebSocketState.CONNECTED

    async def send_text(self, data: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_on_send:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))

    def close_silently(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]


@pytest.fixture
def message_factory():
    """Фабрика входящих сообщений aio_pika."""
    return make_message


@pytest.fixture
def record_factory():
    """Фабрика записей уведомлений."""
    return make_record


@pytest.fixture
def websocket_factory():
    """Фабрика фейковых WebSocket соединений."""
    return FakeWebSocket
