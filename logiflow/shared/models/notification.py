# logiflow/shared/models/notification.py
"""
Модели записи уведомления и статистики.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from logiflow.common.constants import Severity


class NotificationRecord(BaseModel):
    """
    Запись уведомления (таблица notifications).

    Создаётся один раз на eventId. Меняются только processed и
    processed_at, записи не удаляются.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    event_id: str = Field(alias="eventId")
    microservice: str
    action: str
    entity_type: str = Field(alias="entityType")
    entity_id: str = Field(alias="entityId")
    message: str
    severity: Severity
    event_timestamp: datetime = Field(alias="eventTimestamp")
    data: dict[str, Any] = Field(default_factory=dict)
    processed: bool = False
    processed_at: datetime | None = Field(default=None, alias="processedAt")
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NotificationRecord":
        """Из строки asyncpg (snake_case колонки)."""
        values = dict(row)
        # jsonb без кодека приходит строкой
        if isinstance(values.get("data"), str):
            values["data"] = json.loads(values["data"])
        return cls.model_validate(values)


class MicroserviceCount(BaseModel):
    """Количество уведомлений от сервиса."""
    microservice: str
    count: int


class SeverityCount(BaseModel):
    """Количество уведомлений по важности."""
    severity: Severity
    count: int


class NotificationStats(BaseModel):
    """Сводная статистика уведомлений."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    processed: int = 0
    pending: int = 0
    by_microservice: list[MicroserviceCount] = Field(default_factory=list, alias="byMicroservice")
    by_severity: list[SeverityCount] = Field(default_factory=list, alias="bySeverity")
