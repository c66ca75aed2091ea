# logiflow/worker/base.py
"""
Базовый класс для консьюмеров RabbitMQ.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from aio_pika.abc import AbstractIncomingMessage

from logiflow.common.constants import TypeMsg
from logiflow.common.logger import log_debug, log_error, log_info, log_warning
from logiflow.infra.event_bus import EventBus, get_event_bus


class BaseConsumer(ABC):
    """
    Базовый класс для всех консьюмеров.
    Объявляет свою durable очередь, привязывает её к шаблонам и
    обрабатывает сообщения. Подтверждение (ack/nack/reject) остаётся
    за наследником.
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        prefetch_count: int | None = None,
    ) -> None:
        """
        Инициализирует консьюмер.

        Args:
            event_bus: Шина событий
            prefetch_count: Максимум неподтверждённых сообщений в работе
        """
        if prefetch_count is None:
            from logiflow.config import settings
            prefetch_count = settings.rabbitmq.RABBITMQ_PREFETCH_COUNT

        self.event_bus = event_bus or get_event_bus()
        self.prefetch_count = prefetch_count
        self._running = False
        self._connect_task: asyncio.Task | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя консьюмера."""
        pass

    @property
    @abstractmethod
    def queue_name(self) -> str:
        """Имя durable очереди."""
        pass

    @property
    @abstractmethod
    def bindings(self) -> list[str]:
        """Шаблоны routing key для привязки очереди."""
        pass

    @property
    def queue_arguments(self) -> dict[str, Any] | None:
        """Аргументы очереди (dead-letter и т.д.)."""
        return None

    @property
    def is_running(self) -> bool:
        return self._running

    @abstractmethod
    async def handle_message(self, message: AbstractIncomingMessage) -> None:
        """
        Обрабатывает сообщение и подтверждает его.

        Args:
            message: Входящее сообщение RabbitMQ
        """
        pass

    async def setup(self) -> None:
        """Дополнительная топология перед подпиской."""
        return None

    async def start(self) -> None:
        """Запускает консьюмер (шина уже должна быть подключена)."""
        if self._running:
            return

        await log_info(f"Консьюмер {self.name} запускается...", type_msg=TypeMsg.INFO)

        await self.setup()
        await self.event_bus.subscribe(
            queue_name=self.queue_name,
            bindings=self.bindings,
            callback=self._on_message,
            prefetch_count=self.prefetch_count,
            arguments=self.queue_arguments,
        )

        self._running = True
        await log_info(
            f"Консьюмер {self.name} слушает {self.queue_name} ({', '.join(self.bindings)})",
            type_msg=TypeMsg.INFO,
        )

    async def run_with_retry(self, attempts: int | None = None, delay: float | None = None) -> bool:
        """
        Подключается к брокеру с ограниченными повторами и запускает консьюмер.
        При неудаче процесс продолжает работать без консьюмера.

        Returns:
            True если консьюмер запущен
        """
        if attempts is None or delay is None:
            from logiflow.config import settings
            attempts = attempts or settings.rabbitmq.RABBITMQ_CONNECT_ATTEMPTS
            delay = delay if delay is not None else settings.rabbitmq.RABBITMQ_CONNECT_DELAY

        connected = await self.event_bus.connect_with_retry(attempts=attempts, delay=delay)
        if not connected:
            await log_warning(f"Консьюмер {self.name} не запущен: брокер недоступен")
            return False

        try:
            await self.start()
        except Exception as e:
            await log_error(f"Консьюмер {self.name} не запущен: {e}", exc_info=True)
            return False
        return True

    def start_in_background(self, attempts: int | None = None, delay: float | None = None) -> asyncio.Task:
        """Запускает run_with_retry фоновой задачей, не блокируя старт сервера."""
        self._connect_task = asyncio.create_task(
            self.run_with_retry(attempts=attempts, delay=delay),
            name=f"consumer-connect-{self.name}",
        )
        return self._connect_task

    async def stop(self) -> None:
        """Останавливает консьюмер."""
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
            await asyncio.gather(self._connect_task, return_exceptions=True)
        self._connect_task = None

        if not self._running:
            return

        self._running = False
        await self.event_bus.unsubscribe(self.queue_name)
        await log_info(f"Консьюмер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        """
        Обработчик входящего сообщения.

        Необработанное исключение наследника не должно вешать сообщение:
        оно отклоняется без повторной постановки.
        """
        await log_debug(
            f"Консьюмер {self.name} получил {message.routing_key}",
            extra={"message_id": message.message_id},
        )

        try:
            await self.handle_message(message)
        except Exception as e:
            await log_error(
                f"Ошибка в консьюмере {self.name}: {e}",
                extra={"routing_key": message.routing_key, "message_id": message.message_id},
                exc_info=True,
            )
            if not message.processed:
                await message.reject(requeue=False)
