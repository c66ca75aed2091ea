# logiflow/notifications/dispatcher.py
"""
Рассылка уведомлений по каналам в зависимости от важности.

ERROR -> critical (SMS / срочный email)
WARN  -> standard (email)
INFO  -> informational (push)

Реальные провайдеры не подключены: отправители по умолчанию пишут в лог.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from logiflow.common.constants import NotificationChannel, Severity, TypeMsg
from logiflow.common.logger import log_info, log_warning
from logiflow.shared.models.notification import NotificationRecord

Sender = Callable[[NotificationRecord], Awaitable[None]]

SEVERITY_CHANNELS: dict[Severity, NotificationChannel] = {
    Severity.ERROR: NotificationChannel.CRITICAL,
    Severity.WARN: NotificationChannel.STANDARD,
    Severity.INFO: NotificationChannel.INFORMATIONAL,
}


def channel_for(severity: Severity | str) -> NotificationChannel:
    """Канал для уровня важности (неизвестный уровень -> informational)."""
    try:
        return SEVERITY_CHANNELS[Severity(severity)]
    except ValueError:
        return NotificationChannel.INFORMATIONAL


async def send_critical(record: NotificationRecord) -> None:
    await log_warning(
        f"🚨 Критическое уведомление [{record.microservice}] {record.message}",
        extra={"event_id": record.event_id, "channel": NotificationChannel.CRITICAL.value},
    )


async def send_standard(record: NotificationRecord) -> None:
    await log_info(
        f"⚠️ Предупреждение [{record.microservice}] {record.message}",
        extra={"event_id": record.event_id, "channel": NotificationChannel.STANDARD.value},
    )


async def send_informational(record: NotificationRecord) -> None:
    await log_info(
        f"ℹ️ Информация [{record.microservice}] {record.message}",
        type_msg=TypeMsg.DEBUG,
        extra={"event_id": record.event_id, "channel": NotificationChannel.INFORMATIONAL.value},
    )


class NotificationDispatcher:
    """Выбирает канал по severity и вызывает отправителя."""

    def __init__(self, senders: dict[NotificationChannel, Sender] | None = None) -> None:
        self.senders: dict[NotificationChannel, Sender] = {
            NotificationChannel.CRITICAL: send_critical,
            NotificationChannel.STANDARD: send_standard,
            NotificationChannel.INFORMATIONAL: send_informational,
        }
        if senders:
            self.senders.update(senders)

    async def dispatch(self, record: NotificationRecord) -> NotificationChannel:
        """
        Отправляет уведомление.

        Returns:
            Использованный канал

        Raises:
            Exception: ошибка отправителя (обрабатывает вызывающий код)
        """
        channel = channel_for(record.severity)
        await self.senders[channel](record)
        return channel
