# logiflow/shared/events/fleet_events.py
"""
События флота (fleet-service): транспорт и курьеры.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from logiflow.common.constants import Microservice, Severity
from logiflow.infra.event_bus import EventBus
from logiflow.shared.events.producer import EventProducer, PublishResult


class FleetRoutingKeys:
    """Routing keys событий флота."""
    VEHICULO_CREADO = "vehiculo.creado"
    VEHICULO_ACTUALIZADO = "vehiculo.estado.actualizado"
    VEHICULO_ASIGNADO = "vehiculo.asignado"
    REPARTIDOR_CREADO = "repartidor.creado"
    REPARTIDOR_ACTUALIZADO = "repartidor.actualizado"
    REPARTIDOR_UBICACION = "repartidor.ubicacion.actualizada"


def _full_name(repartidor: Mapping[str, Any]) -> str:
    return f"{repartidor.get('nombre', '')} {repartidor.get('apellido', '')}".strip()


class FleetProducer:
    """Публикует события транспорта и курьеров."""

    def __init__(self, event_bus: EventBus | None = None, producer: EventProducer | None = None) -> None:
        self.producer = producer or EventProducer(Microservice.FLEET.value, event_bus=event_bus)

    async def publish_vehiculo_creado(self, vehiculo: Mapping[str, Any]) -> PublishResult:
        return await self.producer.publish(
            action="VEHICULO_CREADO",
            entity_type="Vehiculo",
            entity_id=vehiculo.get("placa", ""),
            message=f"Nuevo vehículo registrado: {vehiculo.get('placa')}",
            data={
                "id": vehiculo.get("id"),
                "placa": vehiculo.get("placa"),
                "marca": vehiculo.get("marca"),
                "modelo": vehiculo.get("modelo"),
                "tipoVehiculo": vehiculo.get("tipoVehiculo"),
                "estado": vehiculo.get("estado"),
            },
            routing_key=FleetRoutingKeys.VEHICULO_CREADO,
        )

    async def publish_vehiculo_actualizado(self, vehiculo: Mapping[str, Any], estado_anterior: str) -> PublishResult:
        return await self.producer.publish(
            action="VEHICULO_ACTUALIZADO",
            entity_type="Vehiculo",
            entity_id=vehiculo.get("placa", ""),
            message=f"Vehículo {vehiculo.get('placa')} cambió de {estado_anterior} a {vehiculo.get('estado')}",
            data={
                "id": vehiculo.get("id"),
                "placa": vehiculo.get("placa"),
                "estadoAnterior": estado_anterior,
                "estadoActual": vehiculo.get("estado"),
            },
            routing_key=FleetRoutingKeys.VEHICULO_ACTUALIZADO,
        )

    async def publish_vehiculo_asignado(
        self,
        repartidor: Mapping[str, Any],
        vehiculo: Mapping[str, Any],
    ) -> PublishResult:
        return await self.producer.publish(
            action="VEHICULO_ASIGNADO",
            entity_type="Repartidor",
            entity_id=repartidor.get("identificacion", ""),
            message=f"Vehículo {vehiculo.get('placa')} asignado a {repartidor.get('nombre')}",
            data={
                "repartidorId": repartidor.get("id"),
                "vehiculoId": vehiculo.get("id"),
                "placa": vehiculo.get("placa"),
                "tipoVehiculo": vehiculo.get("tipoVehiculo"),
            },
            routing_key=FleetRoutingKeys.VEHICULO_ASIGNADO,
        )

    async def publish_repartidor_creado(self, repartidor: Mapping[str, Any]) -> PublishResult:
        return await self.producer.publish(
            action="REPARTIDOR_CREADO",
            entity_type="Repartidor",
            entity_id=repartidor.get("identificacion", ""),
            message=f"Nuevo repartidor registrado: {_full_name(repartidor)}",
            data={
                "id": repartidor.get("id"),
                "identificacion": repartidor.get("identificacion"),
                "nombre": repartidor.get("nombre"),
                "apellido": repartidor.get("apellido"),
                "tipoLicencia": repartidor.get("tipoLicencia"),
                "zonaId": repartidor.get("zonaId"),
            },
            routing_key=FleetRoutingKeys.REPARTIDOR_CREADO,
        )

    async def publish_repartidor_actualizado(
        self,
        repartidor: Mapping[str, Any],
        estado_anterior: str | None = None,
    ) -> PublishResult:
        data: dict[str, Any] = {
            "id": repartidor.get("id"),
            "identificacion": repartidor.get("identificacion"),
            "estado": repartidor.get("estado"),
            "zonaId": repartidor.get("zonaId"),
        }
        if estado_anterior is not None:
            data["estadoAnterior"] = estado_anterior

        return await self.producer.publish(
            action="REPARTIDOR_ACTUALIZADO",
            entity_type="Repartidor",
            entity_id=repartidor.get("identificacion", ""),
            message=f"Repartidor {_full_name(repartidor)} actualizado",
            data=data,
            routing_key=FleetRoutingKeys.REPARTIDOR_ACTUALIZADO,
        )

    async def publish_repartidor_ubicacion(self, repartidor: Mapping[str, Any]) -> PublishResult:
        return await self.producer.publish(
            action="REPARTIDOR_UBICACION",
            entity_type="Repartidor",
            entity_id=repartidor.get("identificacion", ""),
            message=f"Ubicación actualizada para {repartidor.get('nombre')}",
            severity=Severity.INFO,
            data={
                "id": repartidor.get("id"),
                "identificacion": repartidor.get("identificacion"),
                "latActual": repartidor.get("latActual"),
                "lngActual": repartidor.get("lngActual"),
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            },
            routing_key=FleetRoutingKeys.REPARTIDOR_UBICACION,
        )
