# logiflow/shared/events/producer.py
"""
Публикация событий в общий exchange.

Продюсер никогда не бросает исключение вызывающему коду: бизнес-операция
не должна падать из-за брокера. Результат публикации возвращается
как PublishResult.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from aio_pika.exceptions import DeliveryError

from logiflow.common.constants import PublishStatus, Severity, TypeMsg
from logiflow.common.logger import log_error, log_info, log_warning
from logiflow.infra.event_bus import BrokerUnavailableError, EventBus, get_event_bus
from logiflow.shared.events.envelope import EventEnvelope
from logiflow.shared.events.routing import (
    InvalidRoutingKeyError,
    routing_key_from_action,
    validate_routing_key,
)


@dataclass(frozen=True)
class PublishResult:
    """Итог публикации одного события."""
    status: PublishStatus
    event_id: str
    routing_key: str
    attempts: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == PublishStatus.OK


class EventProducer:
    """
    Продюсер событий одного сервиса.

    Один вызов publish() = один конверт со свежим eventId. Внутренние
    повторы публикуют тот же конверт с тем же eventId, поэтому консьюмеры
    отбросят дубликат.
    """

    def __init__(
        self,
        microservice: str,
        event_bus: EventBus | None = None,
        retries: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        """
        Args:
            microservice: Имя сервиса-источника (`pedido-service`)
            event_bus: Шина событий (по умолчанию процесса)
            retries: Сколько раз повторять публикацию после ошибки
            retry_delay: Базовая задержка между повторами (секунды)
        """
        if retries is None or retry_delay is None:
            from logiflow.config import settings
            retries = settings.rabbitmq.RABBITMQ_PUBLISH_RETRIES if retries is None else retries
            retry_delay = settings.rabbitmq.RABBITMQ_PUBLISH_RETRY_DELAY if retry_delay is None else retry_delay

        self.microservice = microservice
        self.event_bus = event_bus or get_event_bus()
        self.retries = max(0, retries)
        self.retry_delay = retry_delay

    def build_envelope(
        self,
        action: str,
        entity_type: str,
        entity_id: str | int,
        message: str,
        severity: Severity | str = Severity.INFO,
        data: dict[str, Any] | None = None,
        event_type: str = "",
    ) -> EventEnvelope:
        """Собирает конверт со свежим eventId и текущим временем."""
        return EventEnvelope(
            eventType=event_type,
            microservice=self.microservice,
            action=action,
            entityType=entity_type,
            entityId=str(entity_id),
            message=message,
            severity=severity,
            data=data or {},
        )

    async def publish(
        self,
        action: str,
        entity_type: str,
        entity_id: str | int,
        message: str,
        severity: Severity | str = Severity.INFO,
        data: dict[str, Any] | None = None,
        routing_key: str | None = None,
    ) -> PublishResult:
        """
        Публикует событие.

        Args:
            action: Доменное действие (`PEDIDO_CREADO`)
            entity_type: Тип сущности (`Pedido`)
            entity_id: Идентификатор сущности
            message: Человекочитаемое описание
            severity: INFO | WARN | ERROR
            data: Нагрузка события
            routing_key: Явный ключ; по умолчанию выводится из action

        Returns:
            PublishResult со статусом OK, BROKER_UNAVAILABLE или REJECTED
        """
        try:
            key = validate_routing_key(routing_key) if routing_key else routing_key_from_action(action)
        except InvalidRoutingKeyError as e:
            await log_error(f"Событие {action} не опубликовано: {e}")
            return PublishResult(
                status=PublishStatus.REJECTED,
                event_id="",
                routing_key=routing_key or "",
                error=str(e),
            )

        envelope = self.build_envelope(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            message=message,
            severity=severity,
            data=data,
            event_type=key,
        )
        return await self.publish_envelope(envelope, key)

    async def publish_envelope(self, envelope: EventEnvelope, routing_key: str) -> PublishResult:
        """Публикует готовый конверт с повторами при ошибках брокера."""
        try:
            validate_routing_key(routing_key)
        except InvalidRoutingKeyError as e:
            await log_error(f"Событие {envelope.event_id} не опубликовано: {e}")
            return PublishResult(PublishStatus.REJECTED, envelope.event_id, routing_key, error=str(e))

        if not self.event_bus.is_connected:
            await log_warning(
                f"RabbitMQ недоступен, событие {routing_key} не опубликовано",
                extra={"event_id": envelope.event_id},
            )
            return PublishResult(
                PublishStatus.BROKER_UNAVAILABLE,
                envelope.event_id,
                routing_key,
                error="broker not connected",
            )

        body = envelope.to_json().encode("utf-8")
        last_error: str | None = None
        attempts = 0

        for attempt in range(1, self.retries + 2):
            attempts = attempt
            try:
                await self.event_bus.publish_raw(body, routing_key=routing_key, message_id=envelope.event_id)
                await log_info(
                    f"📤 Событие опубликовано: {routing_key}",
                    type_msg=TypeMsg.DEBUG,
                    extra={"event_id": envelope.event_id, "attempts": attempt},
                )
                return PublishResult(PublishStatus.OK, envelope.event_id, routing_key, attempts=attempt)
            except DeliveryError as e:
                await log_error(f"Брокер отклонил событие {routing_key}: {e}", extra={"event_id": envelope.event_id})
                return PublishResult(
                    PublishStatus.REJECTED, envelope.event_id, routing_key, attempts=attempt, error=str(e),
                )
            except BrokerUnavailableError as e:
                last_error = str(e)
                break
            except Exception as e:
                last_error = str(e)
                if attempt <= self.retries:
                    await log_warning(
                        f"Ошибка публикации {routing_key} (попытка {attempt}): {e}",
                        extra={"event_id": envelope.event_id},
                    )
                    await asyncio.sleep(self.retry_delay * attempt)

        await log_error(
            f"Событие {routing_key} не опубликовано после {attempts} попыток: {last_error}",
            extra={"event_id": envelope.event_id},
        )
        return PublishResult(
            PublishStatus.BROKER_UNAVAILABLE,
            envelope.event_id,
            routing_key,
            attempts=attempts,
            error=last_error,
        )
