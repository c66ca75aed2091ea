# logiflow/infra/event_bus.py
"""
Шина событий на базе RabbitMQ.

Один durable topic exchange на все сервисы. Продюсеры публикуют
persistent-сообщения с JSON-конвертом, консьюмеры объявляют свои durable
очереди и привязывают их к шаблонам routing key.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustConnection,
)

from logiflow.common.constants import TypeMsg
from logiflow.common.logger import log_error, log_info, log_warning

DEFAULT_EXCHANGE = "logiflow.events"

# Колбэк консьюмера: сам решает, ack/nack/reject
MessageCallback = Callable[[AbstractIncomingMessage], Awaitable[None]]


class BrokerUnavailableError(ConnectionError):
    """Нет соединения с RabbitMQ."""


@dataclass
class Subscription:
    """Активный консьюмер: отдельный канал, очередь и consumer tag."""
    queue_name: str
    channel: AbstractChannel
    queue: AbstractQueue
    consumer_tag: str
    bindings: list[str] = field(default_factory=list)


class EventBus:
    """
    Подключение к RabbitMQ и работа с общим exchange.

    Реализует:
    - Подключение с ограниченным числом попыток и экспоненциальной задержкой
    - Публикацию persistent-сообщений
    - Объявление durable очередей, привязку к шаблонам и запуск консьюмеров
    - Dead-letter exchange для сообщений, исчерпавших попытки
    """

    def __init__(self, exchange_name: str = DEFAULT_EXCHANGE) -> None:
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._exchange_name = exchange_name
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def exchange_name(self) -> str:
        return self._exchange_name

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    @property
    def subscriptions(self) -> dict[str, Subscription]:
        return dict(self._subscriptions)

    async def connect(
        self,
        url: str | None = None,
        exchange_name: str | None = None,
    ) -> None:
        """
        Подключается к RabbitMQ и объявляет exchange.

        Args:
            url: URL RabbitMQ (если None, берётся из конфига)
            exchange_name: Имя exchange
        """
        if self.is_connected:
            return

        if url is None:
            from logiflow.config import settings
            url = settings.rabbitmq.url
            exchange_name = exchange_name or settings.rabbitmq.RABBITMQ_EXCHANGE

        if exchange_name:
            self._exchange_name = exchange_name

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel()
        self._exchange = await self._declare_exchange(self._channel)

        await log_info(
            f"Подключение к RabbitMQ установлено, exchange {self._exchange_name}",
            type_msg=TypeMsg.INFO,
        )

    async def connect_with_retry(
        self,
        url: str | None = None,
        exchange_name: str | None = None,
        attempts: int = 5,
        delay: float = 2.0,
    ) -> bool:
        """
        Подключается к RabbitMQ с ограниченным числом попыток.
        Задержка растёт экспоненциально: delay, 2*delay, 4*delay...

        Returns:
            True если подключение установлено, False если все попытки исчерпаны
        """
        for attempt in range(1, attempts + 1):
            try:
                await self.connect(url=url, exchange_name=exchange_name)
                return True
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt < attempts:
                    wait = delay * (2 ** (attempt - 1))
                    await log_warning(
                        f"RabbitMQ недоступен (попытка {attempt}/{attempts}): {e}. "
                        f"Повтор через {wait:.1f} с"
                    )
                    await asyncio.sleep(wait)
                else:
                    await log_error(
                        f"Не удалось подключиться к RabbitMQ после {attempts} попыток: {e}. "
                        "Работаем в деградированном режиме (без событий)"
                    )
        return False

    async def disconnect(self) -> None:
        """Останавливает консьюмеры и закрывает соединение."""
        for subscription in list(self._subscriptions.values()):
            await self.unsubscribe(subscription.queue_name)

        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def publish_raw(
        self,
        body: bytes,
        routing_key: str,
        message_id: str | None = None,
        headers: dict[str, Any] | None = None,
    ) -> None:
        """
        Публикует persistent-сообщение в exchange.

        Raises:
            BrokerUnavailableError: нет соединения
            aio_pika.exceptions.DeliveryError: брокер отклонил сообщение
        """
        if not self.is_connected or self._exchange is None:
            raise BrokerUnavailableError("нет соединения с RabbitMQ")

        message = Message(
            body=body,
            content_type="application/json",
            content_encoding="utf-8",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=message_id,
            timestamp=datetime.now(timezone.utc),
            headers=headers or {},
        )

        # mandatory=False: сообщение без подходящих очередей брокер молча отбрасывает
        await self._exchange.publish(message, routing_key=routing_key, mandatory=False)

    async def declare_dead_letter(self, exchange_name: str, queue_name: str) -> None:
        """Объявляет fanout dead-letter exchange и durable очередь для него."""
        if not self.is_connected or self._channel is None:
            raise BrokerUnavailableError("нет соединения с RabbitMQ")

        dlx = await self._channel.declare_exchange(exchange_name, ExchangeType.FANOUT, durable=True)
        dlq = await self._channel.declare_queue(queue_name, durable=True)
        await dlq.bind(dlx)

        await log_info(f"Dead-letter очередь {queue_name} привязана к {exchange_name}", type_msg=TypeMsg.DEBUG)

    async def subscribe(
        self,
        queue_name: str,
        bindings: list[str],
        callback: MessageCallback,
        prefetch_count: int = 10,
        durable: bool = True,
        arguments: dict[str, Any] | None = None,
    ) -> Subscription:
        """
        Объявляет очередь, привязывает её к шаблонам и запускает консьюмер.

        Каждый консьюмер получает свой канал, чтобы prefetch ограничивал
        только его сообщения.

        Args:
            queue_name: Имя очереди
            bindings: Шаблоны routing key (`pedido.*`, `#`)
            callback: Обработчик входящих сообщений (отвечает за ack/nack)
            prefetch_count: Максимум неподтверждённых сообщений в работе
            durable: Переживает ли очередь перезапуск брокера
            arguments: Аргументы очереди (x-dead-letter-exchange и т.д.)
        """
        if not self.is_connected or self._connection is None:
            raise BrokerUnavailableError("нет соединения с RabbitMQ")

        if queue_name in self._subscriptions:
            return self._subscriptions[queue_name]

        channel = await self._connection.channel()
        await channel.set_qos(prefetch_count=prefetch_count)
        exchange = await self._declare_exchange(channel)

        queue = await channel.declare_queue(queue_name, durable=durable, arguments=arguments)
        for pattern in bindings:
            await queue.bind(exchange, routing_key=pattern)
            await log_info(f"Очередь {queue_name} привязана к шаблону {pattern}", type_msg=TypeMsg.DEBUG)

        consumer_tag = await queue.consume(callback, no_ack=False)

        subscription = Subscription(
            queue_name=queue_name,
            channel=channel,
            queue=queue,
            consumer_tag=consumer_tag,
            bindings=list(bindings),
        )
        self._subscriptions[queue_name] = subscription

        await log_info(f"Консьюмер запущен на очереди {queue_name}", type_msg=TypeMsg.INFO)
        return subscription

    async def unsubscribe(self, queue_name: str) -> None:
        """Останавливает консьюмер и закрывает его канал."""
        subscription = self._subscriptions.pop(queue_name, None)
        if subscription is None:
            return

        try:
            await subscription.queue.cancel(subscription.consumer_tag)
            await subscription.channel.close()
        except Exception as e:
            await log_warning(f"Ошибка остановки консьюмера {queue_name}: {e}")

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к RabbitMQ."""
        return self.is_connected

    async def _declare_exchange(self, channel: AbstractChannel) -> AbstractExchange:
        return await channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )


# Глобальный экземпляр
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Возвращает экземпляр EventBus процесса."""
    global _event_bus
    if _event_bus is None:
        from logiflow.config import settings
        _event_bus = EventBus(exchange_name=settings.rabbitmq.RABBITMQ_EXCHANGE)
    return _event_bus


async def close_event_bus() -> None:
    """Закрывает подключение к RabbitMQ."""
    global _event_bus
    if _event_bus is not None:
        await _event_bus.disconnect()
        _event_bus = None
