# logiflow/shared/events/billing_events.py
"""
События биллинга (billing-service).
"""

from __future__ import annotations

from typing import Any, Mapping

from logiflow.common.constants import Microservice, Severity
from logiflow.infra.event_bus import EventBus
from logiflow.shared.events.producer import EventProducer, PublishResult


class BillingRoutingKeys:
    """Routing keys событий счетов."""
    FACTURA_CREADA = "factura.creada"
    FACTURA_EMITIDA = "factura.emitida"
    FACTURA_PAGADA = "factura.pagada"
    FACTURA_ANULADA = "factura.anulada"


def factura_data(factura: Mapping[str, Any]) -> dict[str, Any]:
    """Нагрузка события из сущности счёта."""
    return {
        "facturaId": factura.get("id"),
        "numeroFactura": factura.get("numeroFactura"),
        "pedidoId": factura.get("pedidoId"),
        "clienteId": factura.get("clienteId"),
        "total": factura.get("total"),
        "estado": factura.get("estado"),
    }


class BillingProducer:
    """Публикует события жизненного цикла счёта."""

    def __init__(self, event_bus: EventBus | None = None, producer: EventProducer | None = None) -> None:
        self.producer = producer or EventProducer(Microservice.BILLING.value, event_bus=event_bus)

    async def _publish(
        self,
        action: str,
        routing_key: str,
        factura: Mapping[str, Any],
        message: str,
        severity: Severity = Severity.INFO,
        **extra: Any,
    ) -> PublishResult:
        return await self.producer.publish(
            action=action,
            entity_type="Factura",
            entity_id=factura.get("numeroFactura") or factura.get("id") or "",
            message=message,
            severity=severity,
            data={**factura_data(factura), **extra},
            routing_key=routing_key,
        )

    async def publish_factura_creada(self, factura: Mapping[str, Any]) -> PublishResult:
        return await self._publish(
            "FACTURA_CREADA",
            BillingRoutingKeys.FACTURA_CREADA,
            factura,
            f"Nueva factura {factura.get('numeroFactura')} creada por ${factura.get('total')}",
        )

    async def publish_factura_emitida(self, factura: Mapping[str, Any]) -> PublishResult:
        return await self._publish(
            "FACTURA_EMITIDA",
            BillingRoutingKeys.FACTURA_EMITIDA,
            factura,
            f"Factura {factura.get('numeroFactura')} emitida",
        )

    async def publish_factura_pagada(self, factura: Mapping[str, Any]) -> PublishResult:
        return await self._publish(
            "FACTURA_PAGADA",
            BillingRoutingKeys.FACTURA_PAGADA,
            factura,
            f"Factura {factura.get('numeroFactura')} pagada",
        )

    async def publish_factura_anulada(self, factura: Mapping[str, Any], motivo: str) -> PublishResult:
        return await self._publish(
            "FACTURA_ANULADA",
            BillingRoutingKeys.FACTURA_ANULADA,
            factura,
            f"Factura {factura.get('numeroFactura')} anulada: {motivo}",
            severity=Severity.WARN,
            motivo=motivo,
        )
