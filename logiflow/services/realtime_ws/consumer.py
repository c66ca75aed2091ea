# logiflow/services/realtime_ws/consumer.py
"""
Консьюмер `websocket.broadcast`: все события exchange -> WebSocket мост.
"""

from __future__ import annotations

import json

from aio_pika.abc import AbstractIncomingMessage

from logiflow.common.logger import log_error
from logiflow.infra.event_bus import EventBus
from logiflow.services.realtime_ws.bridge import BroadcastBridge
from logiflow.worker.base import BaseConsumer


class BroadcastConsumer(BaseConsumer):
    """
    Пересылает каждое событие exchange подписанным клиентам.

    Ack после попытки рассылки (даже если никто не подписан).
    Не JSON или ошибка обработки -> reject без requeue.
    """

    def __init__(
        self,
        bridge: BroadcastBridge,
        event_bus: EventBus | None = None,
        prefetch_count: int | None = None,
    ) -> None:
        super().__init__(event_bus=event_bus, prefetch_count=prefetch_count)

        from logiflow.config import settings

        self._settings = settings.rabbitmq
        self.bridge = bridge

    @property
    def name(self) -> str:
        return "websocket-broadcast"

    @property
    def queue_name(self) -> str:
        return self._settings.BROADCAST_QUEUE

    @property
    def bindings(self) -> list[str]:
        return list(self._settings.BROADCAST_BINDINGS)

    async def handle_message(self, message: AbstractIncomingMessage) -> None:
        try:
            event = json.loads(message.body)
            if not isinstance(event, dict):
                raise ValueError("тело события должно быть JSON объектом")
            await self.bridge.handle_exchange_event(message.routing_key or "", event)
        except Exception as e:
            await log_error(
                f"Ошибка пересылки события {message.routing_key} в WebSocket: {e}",
                extra={"message_id": message.message_id},
            )
            await message.reject(requeue=False)
            return

        await message.ack()
