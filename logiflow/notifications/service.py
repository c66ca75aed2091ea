# logiflow/notifications/service.py
"""
Сервис уведомлений: идемпотентное сохранение событий и запросы к журналу.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from logiflow.common.constants import Microservice, Severity, TypeMsg
from logiflow.common.logger import log_debug, log_info
from logiflow.notifications.repository import NotificationRepository
from logiflow.shared.events.envelope import EventEnvelope
from logiflow.shared.models.notification import NotificationRecord, NotificationStats


class NotificationNotFoundError(LookupError):
    """Уведомление с таким id не найдено."""

    def __init__(self, notification_id: int) -> None:
        super().__init__(f"Notificación no encontrada: {notification_id}")
        self.notification_id = notification_id


# Сообщения для событий auth-service (в событии нет action/message)
_USUARIO_ACTIONS: dict[str, tuple[str, str]] = {
    "usuario.creado": ("USUARIO_CREADO", "Usuario creado"),
    "usuario.actualizado": ("USUARIO_ACTUALIZADO", "Usuario actualizado"),
    "usuario.desactivado": ("USUARIO_DESACTIVADO", "Usuario desactivado"),
}


def normalize_envelope(envelope: EventEnvelope) -> EventEnvelope:
    """
    Достраивает поля коротких событий auth-service.

    entityType = USUARIO, entityId = data.usuarioId, action и message
    по eventType. Остальные события возвращаются без изменений.
    """
    if envelope.microservice != Microservice.AUTH.value:
        return envelope

    updates: dict[str, Any] = {
        "entity_type": "USUARIO",
        "entity_id": str(envelope.data.get("usuarioId") or envelope.entity_id or ""),
    }

    known = _USUARIO_ACTIONS.get(envelope.event_type)
    if known is not None:
        action, title = known
        updates["action"] = action
        updates["message"] = f"{title}: {envelope.data.get('username', '')}"

    return envelope.model_copy(update=updates)


@dataclass(frozen=True)
class IngestResult:
    """Итог приёма события."""
    record: NotificationRecord
    created: bool

    @property
    def duplicate(self) -> bool:
        return not self.created


class NotificationService:
    """
    Журнал уведомлений.

    Конечный автомат события:
    RECEIVED -> (дубликат ? DISCARD : PERSISTED) -> DISPATCHED (processed=true)
    """

    def __init__(
        self,
        repository: NotificationRepository | None = None,
        default_limit: int | None = None,
        max_limit: int | None = None,
    ) -> None:
        if default_limit is None or max_limit is None:
            from logiflow.config import settings
            default_limit = default_limit or settings.notifications.LIST_DEFAULT_LIMIT
            max_limit = max_limit or settings.notifications.LIST_MAX_LIMIT

        self.repository = repository or NotificationRepository()
        self.default_limit = default_limit
        self.max_limit = max_limit

    # =========================================================================
    # ПРИЁМ СОБЫТИЙ
    # =========================================================================

    async def ingest(self, envelope: EventEnvelope) -> IngestResult:
        """
        Сохраняет событие ровно один раз на eventId.

        Повторная доставка (или проигранная гонка параллельной вставки)
        возвращает уже сохранённую запись с created=False.
        """
        existing = await self.repository.get_by_event_id(envelope.event_id)
        if existing is not None:
            await log_debug(f"Дубликат события пропущен: {envelope.event_id}")
            return IngestResult(record=existing, created=False)

        normalized = normalize_envelope(envelope)
        record = await self.repository.insert_if_absent(normalized)

        if record is None:
            existing = await self.repository.get_by_event_id(envelope.event_id)
            if existing is None:
                raise RuntimeError(f"Запись {envelope.event_id} не вставлена и не найдена")
            await log_debug(f"Дубликат события (параллельная вставка): {envelope.event_id}")
            return IngestResult(record=existing, created=False)

        await log_info(
            f"📝 Уведомление сохранено: [{record.microservice}] {record.action}",
            type_msg=TypeMsg.INFO,
            extra={"event_id": record.event_id, "notification_id": record.id},
        )
        return IngestResult(record=record, created=True)

    # =========================================================================
    # ЗАПРОСЫ
    # =========================================================================

    def clamp_limit(self, limit: int | None) -> int:
        """Лимит выборки в диапазоне 1..max_limit."""
        if limit is None:
            return self.default_limit
        return max(1, min(limit, self.max_limit))

    async def list_all(self, limit: int | None = None) -> list[NotificationRecord]:
        """Последние уведомления, новые первыми."""
        return await self.repository.list_recent(self.clamp_limit(limit))

    async def list_by_microservice(self, microservice: str) -> list[NotificationRecord]:
        return await self.repository.list_by_microservice(microservice)

    async def list_by_severity(self, severity: Severity | str) -> list[NotificationRecord]:
        """
        Raises:
            ValueError: неизвестный уровень важности
        """
        level = Severity(severity.upper()) if isinstance(severity, str) else severity
        return await self.repository.list_by_severity(level.value)

    async def list_unprocessed(self) -> list[NotificationRecord]:
        return await self.repository.list_unprocessed()

    async def get_statistics(self) -> NotificationStats:
        return await self.repository.get_statistics()

    async def mark_processed(self, notification_id: int) -> NotificationRecord:
        """
        Помечает уведомление обработанным.

        Raises:
            NotificationNotFoundError: нет такой записи
        """
        record = await self.repository.mark_processed(notification_id)
        if record is None:
            raise NotificationNotFoundError(notification_id)
        return record
