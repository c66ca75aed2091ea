# logiflow/shared/events/user_events.py
"""
События пользователей (auth-service).

Auth публикует короткий конверт: eventType, microservice и data.
Действие, тип сущности и текст сообщения достраивает сервис уведомлений.
"""

from __future__ import annotations

from typing import Any, Mapping

from logiflow.common.constants import Microservice, Severity
from logiflow.infra.event_bus import EventBus
from logiflow.shared.events.envelope import EventEnvelope
from logiflow.shared.events.producer import EventProducer, PublishResult


class UserRoutingKeys:
    """Routing keys событий пользователей."""
    CREADO = "usuario.creado"
    ACTUALIZADO = "usuario.actualizado"
    DESACTIVADO = "usuario.desactivado"


def usuario_data(usuario: Mapping[str, Any], with_roles: bool = True) -> dict[str, Any]:
    data: dict[str, Any] = {
        "usuarioId": str(usuario.get("id", "")),
        "username": usuario.get("username"),
        "email": usuario.get("email"),
        "roles": list(usuario.get("roles") or []) if with_roles else [],
    }
    if usuario.get("zonaId") is not None:
        data["zonaId"] = str(usuario["zonaId"])
    return data


class UserProducer:
    """Публикует события учётных записей."""

    def __init__(self, event_bus: EventBus | None = None, producer: EventProducer | None = None) -> None:
        self.producer = producer or EventProducer(Microservice.AUTH.value, event_bus=event_bus)

    async def _publish(
        self,
        routing_key: str,
        data: dict[str, Any],
        severity: Severity = Severity.INFO,
    ) -> PublishResult:
        envelope = EventEnvelope(
            eventType=routing_key,
            microservice=self.producer.microservice,
            entityType="USUARIO",
            entityId=data["usuarioId"],
            severity=severity,
            data=data,
        )
        return await self.producer.publish_envelope(envelope, routing_key)

    async def publish_usuario_creado(self, usuario: Mapping[str, Any]) -> PublishResult:
        return await self._publish(UserRoutingKeys.CREADO, usuario_data(usuario))

    async def publish_usuario_actualizado(self, usuario: Mapping[str, Any]) -> PublishResult:
        return await self._publish(UserRoutingKeys.ACTUALIZADO, usuario_data(usuario, with_roles=False))

    async def publish_usuario_desactivado(self, usuario: Mapping[str, Any]) -> PublishResult:
        return await self._publish(UserRoutingKeys.DESACTIVADO, usuario_data(usuario), severity=Severity.WARN)
