# logiflow/shared/events/pedido_events.py
"""
События домена заказов (pedido-service).
"""

from __future__ import annotations

from typing import Any, Mapping

from logiflow.common.constants import Microservice, Severity
from logiflow.infra.event_bus import EventBus
from logiflow.shared.events.producer import EventProducer, PublishResult

ENTITY_TYPE = "Pedido"


class PedidoRoutingKeys:
    """Routing keys событий заказа."""
    CREADO = "pedido.creado"
    ACTUALIZADO = "pedido.estado.actualizado"
    ASIGNADO = "pedido.asignado"
    CANCELADO = "pedido.cancelado"
    ENTREGADO = "pedido.entregado"
    EN_RUTA = "pedido.en.ruta"


def pedido_data(pedido: Mapping[str, Any]) -> dict[str, Any]:
    """Нагрузка события из сущности заказа."""
    return {
        "pedidoId": pedido.get("id"),
        "codigo": pedido.get("codigo"),
        "clienteId": pedido.get("clienteId"),
        "repartidorId": pedido.get("repartidorId"),
        "estado": pedido.get("estado"),
        "tipoEntrega": pedido.get("tipoEntrega"),
        "direccionOrigen": pedido.get("direccionOrigen"),
        "direccionDestino": pedido.get("direccionDestino"),
        "zonaId": pedido.get("zonaId"),
    }


class PedidoProducer:
    """Публикует события жизненного цикла заказа."""

    def __init__(self, event_bus: EventBus | None = None, producer: EventProducer | None = None) -> None:
        self.producer = producer or EventProducer(Microservice.PEDIDO.value, event_bus=event_bus)

    async def _publish(
        self,
        action: str,
        routing_key: str,
        pedido: Mapping[str, Any],
        message: str,
        severity: Severity = Severity.INFO,
        **extra: Any,
    ) -> PublishResult:
        return await self.producer.publish(
            action=action,
            entity_type=ENTITY_TYPE,
            entity_id=pedido.get("codigo") or pedido.get("id") or "",
            message=message,
            severity=severity,
            data={**pedido_data(pedido), **extra},
            routing_key=routing_key,
        )

    async def publish_pedido_creado(self, pedido: Mapping[str, Any]) -> PublishResult:
        return await self._publish(
            "PEDIDO_CREADO",
            PedidoRoutingKeys.CREADO,
            pedido,
            f"Nuevo pedido {pedido.get('codigo')} creado para entrega {pedido.get('tipoEntrega')}",
        )

    async def publish_pedido_actualizado(self, pedido: Mapping[str, Any], estado_anterior: str) -> PublishResult:
        return await self._publish(
            "PEDIDO_ACTUALIZADO",
            PedidoRoutingKeys.ACTUALIZADO,
            pedido,
            f"Pedido {pedido.get('codigo')} cambió de {estado_anterior} a {pedido.get('estado')}",
            estadoAnterior=estado_anterior,
        )

    async def publish_pedido_asignado(self, pedido: Mapping[str, Any], repartidor_id: int | str) -> PublishResult:
        return await self._publish(
            "PEDIDO_ASIGNADO",
            PedidoRoutingKeys.ASIGNADO,
            pedido,
            f"Pedido {pedido.get('codigo')} asignado al repartidor {repartidor_id}",
            repartidorId=repartidor_id,
        )

    async def publish_pedido_cancelado(self, pedido: Mapping[str, Any], motivo: str) -> PublishResult:
        return await self._publish(
            "PEDIDO_CANCELADO",
            PedidoRoutingKeys.CANCELADO,
            pedido,
            f"Pedido {pedido.get('codigo')} cancelado: {motivo}",
            severity=Severity.WARN,
            motivo=motivo,
        )

    async def publish_pedido_entregado(self, pedido: Mapping[str, Any]) -> PublishResult:
        return await self._publish(
            "PEDIDO_ENTREGADO",
            PedidoRoutingKeys.ENTREGADO,
            pedido,
            f"Pedido {pedido.get('codigo')} entregado exitosamente",
        )

    async def publish_pedido_en_ruta(self, pedido: Mapping[str, Any]) -> PublishResult:
        return await self._publish(
            "PEDIDO_EN_RUTA",
            PedidoRoutingKeys.EN_RUTA,
            pedido,
            f"Pedido {pedido.get('codigo')} en ruta",
        )
