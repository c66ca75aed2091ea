# logiflow/shared/events/envelope.py
"""
Конверт события общего exchange.

Формат на проводе: UTF-8 JSON с camelCase ключами:
eventId, eventType, microservice, action, entityType, entityId, message,
timestamp, severity, data. Старые продюсеры присылают `id` вместо `eventId`.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from logiflow.common.constants import Severity
from logiflow.shared.events.payloads import EventPayload, parse_payload
from logiflow.shared.events.routing import action_from_event_type

UNKNOWN = "UNKNOWN"


class InvalidEnvelopeError(ValueError):
    """Тело сообщения не является корректным конвертом события."""


def utc_now_iso() -> str:
    """Текущее время UTC в ISO-8601 с суффиксом Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 строка -> aware datetime (без зоны считается UTC)."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EventEnvelope(BaseModel):
    """
    Конверт события.

    eventId назначает продюсер, он же ключ идемпотентности: повторная
    доставка того же eventId не создаёт второй записи.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid4()), alias="eventId")
    event_type: str = Field(default="", alias="eventType")
    microservice: str = ""
    action: str = UNKNOWN
    entity_type: str = Field(default=UNKNOWN, alias="entityType")
    entity_id: str = Field(default="", alias="entityId")
    message: str = ""
    timestamp: str = Field(default_factory=utc_now_iso)
    severity: Severity = Severity.INFO
    data: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def normalize(cls, values: Any) -> Any:
        """Заполняет производные поля до валидации."""
        if not isinstance(values, dict):
            return values

        values = dict(values)

        if not values.get("eventId") and not values.get("event_id") and values.get("id"):
            values["eventId"] = values.pop("id")
        if values.get("eventId") is not None and not isinstance(values["eventId"], str):
            values["eventId"] = str(values["eventId"])

        event_type = values.get("eventType") or values.get("event_type") or ""
        if not (values.get("action")):
            values["action"] = action_from_event_type(event_type) if event_type else UNKNOWN
        if not values.get("message"):
            values["message"] = f"Event: {event_type}" if event_type else f"Event: {values['action']}"

        for key in ("entityType", "entity_type"):
            if key in values and not values[key]:
                values[key] = UNKNOWN

        for key in ("entityId", "entity_id"):
            if values.get(key) is not None and not isinstance(values[key], str):
                values[key] = str(values[key])
            elif key in values and values[key] is None:
                values[key] = ""

        severity = values.get("severity")
        if severity is None or severity == "":
            values["severity"] = Severity.INFO
        elif isinstance(severity, str):
            values["severity"] = severity.upper()

        if values.get("data") is None:
            values["data"] = {}

        if values.get("timestamp") is None:
            values.pop("timestamp", None)

        return values

    @field_validator("timestamp")
    @classmethod
    def check_timestamp(cls, v: str) -> str:
        """Время события должно быть в ISO-8601."""
        try:
            parse_timestamp(v)
        except ValueError as e:
            raise ValueError(f"timestamp не в формате ISO-8601: {v!r}") from e
        return v

    @property
    def occurred_at(self) -> datetime:
        """Время события как datetime."""
        return parse_timestamp(self.timestamp)

    @property
    def payload(self) -> EventPayload:
        """Типизированная нагрузка по entityType."""
        return parse_payload(self.entity_type, self.data)

    def to_dict(self) -> dict[str, Any]:
        """Словарь в формате провода (camelCase)."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        """Сериализует конверт в JSON."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, body: str | bytes, routing_key: str | None = None) -> "EventEnvelope":
        """
        Разбирает тело сообщения.

        Args:
            body: JSON тело
            routing_key: Routing key доставки (подставляется в eventType, если его нет)

        Raises:
            InvalidEnvelopeError: не JSON, не объект, нет eventId или поля некорректны
        """
        try:
            raw = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidEnvelopeError(f"Тело не является JSON: {e}") from e

        if not isinstance(raw, dict):
            raise InvalidEnvelopeError("Тело события должно быть JSON объектом")

        if not (raw.get("eventId") or raw.get("id")):
            raise InvalidEnvelopeError("В событии нет eventId")

        if routing_key and not raw.get("eventType"):
            raw["eventType"] = routing_key

        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise InvalidEnvelopeError(f"Некорректный конверт события: {e}") from e
