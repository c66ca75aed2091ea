# logiflow/worker/notifications.py
"""
Консьюмер очереди уведомлений.

Принимает события сервисов, сохраняет их идемпотентно по eventId,
рассылает уведомление по каналу важности и подтверждает сообщение.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any

from aio_pika.abc import AbstractIncomingMessage

from logiflow.common.logger import log_debug, log_error, log_warning
from logiflow.infra.event_bus import EventBus
from logiflow.notifications.dispatcher import NotificationDispatcher
from logiflow.notifications.service import NotificationService
from logiflow.shared.events.envelope import EventEnvelope, InvalidEnvelopeError
from logiflow.shared.models.notification import NotificationRecord
from logiflow.worker.base import BaseConsumer

# Сколько eventId со счётчиком неудач держать в памяти
_FAILURES_CAPACITY = 10_000


class NotificationConsumer(BaseConsumer):
    """
    Консьюмер `notifications.queue`.

    Политика подтверждения:
    - сохранено или дубликат -> ack
    - не JSON / некорректный конверт -> reject без requeue (в DLQ)
    - ошибка сохранения -> nack с requeue, после max_attempts -> reject без requeue (в DLQ)
    - ошибка рассылки -> только лог, запись остаётся processed=false, ack
    """

    def __init__(
        self,
        service: NotificationService | None = None,
        dispatcher: NotificationDispatcher | None = None,
        event_bus: EventBus | None = None,
        prefetch_count: int | None = None,
        max_attempts: int | None = None,
        mark_processed_on_dispatch: bool | None = None,
    ) -> None:
        super().__init__(event_bus=event_bus, prefetch_count=prefetch_count)

        from logiflow.config import settings

        self._settings = settings.rabbitmq
        self.service = service or NotificationService()
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.max_attempts = max_attempts or settings.notifications.MAX_DELIVERY_ATTEMPTS
        self.mark_processed_on_dispatch = (
            settings.notifications.MARK_PROCESSED_ON_DISPATCH
            if mark_processed_on_dispatch is None
            else mark_processed_on_dispatch
        )
        self._failures: OrderedDict[str, int] = OrderedDict()

    @property
    def name(self) -> str:
        return "notifications"

    @property
    def queue_name(self) -> str:
        return self._settings.NOTIFICATIONS_QUEUE

    @property
    def bindings(self) -> list[str]:
        return list(self._settings.NOTIFICATIONS_BINDINGS)

    @property
    def queue_arguments(self) -> dict[str, Any] | None:
        return {"x-dead-letter-exchange": self._settings.DEAD_LETTER_EXCHANGE}

    async def setup(self) -> None:
        await self.event_bus.declare_dead_letter(
            self._settings.DEAD_LETTER_EXCHANGE,
            self._settings.NOTIFICATIONS_DLQ,
        )

    async def handle_message(self, message: AbstractIncomingMessage) -> None:
        try:
            envelope = EventEnvelope.from_json(message.body, routing_key=message.routing_key)
        except InvalidEnvelopeError as e:
            await log_error(
                f"Некорректное событие отброшено ({message.routing_key}): {e}",
                extra={"message_id": message.message_id},
            )
            await message.reject(requeue=False)
            return

        await log_debug(
            f"📨 Получено событие: {message.routing_key}",
            extra={"event_id": envelope.event_id},
        )

        try:
            result = await self.service.ingest(envelope)
        except Exception as e:
            await self._on_persistence_error(message, envelope, e)
            return

        self._failures.pop(envelope.event_id, None)

        if result.duplicate:
            await message.ack()
            return

        await self._dispatch(result.record)
        await message.ack()

    async def _dispatch(self, record: NotificationRecord) -> None:
        """Рассылка по каналу; ошибка не мешает подтверждению."""
        try:
            await self.dispatcher.dispatch(record)
            if self.mark_processed_on_dispatch:
                await self.service.mark_processed(record.id)
        except Exception as e:
            await log_error(
                f"Ошибка рассылки уведомления {record.id}: {e}",
                extra={"event_id": record.event_id},
                exc_info=True,
            )

    async def _on_persistence_error(
        self,
        message: AbstractIncomingMessage,
        envelope: EventEnvelope,
        error: Exception,
    ) -> None:
        attempts = self._failures.pop(envelope.event_id, 0) + 1

        if attempts >= self.max_attempts:
            await log_error(
                f"Событие {envelope.event_id} отправлено в DLQ после {attempts} попыток: {error}",
                extra={"routing_key": message.routing_key},
            )
            await message.reject(requeue=False)
            return

        self._failures[envelope.event_id] = attempts
        while len(self._failures) > _FAILURES_CAPACITY:
            self._failures.popitem(last=False)

        await log_warning(
            f"Ошибка сохранения события {envelope.event_id} (попытка {attempts}/{self.max_attempts}): {error}",
            extra={"routing_key": message.routing_key},
        )
        await message.nack(requeue=True)

    def failure_count(self, event_id: str) -> int:
        """Сколько раз подряд не удалось сохранить событие."""
        return self._failures.get(event_id, 0)
