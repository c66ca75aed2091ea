# logiflow/shared/events/payloads.py
"""
Типизированные полезные нагрузки событий (поле `data` конверта).

Модель выбирается по entityType. Все модели принимают лишние поля и отдают
их обратно без изменений, поэтому новые поля продюсеров не теряются.
Неизвестный entityType (или данные, не подошедшие под модель) дают
OpaquePayload с исходным словарём.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_data(self) -> dict[str, Any]:
        """Обратно в словарь с camelCase ключами (только присланные поля)."""
        return self.model_dump(by_alias=True, exclude_unset=True)


# =============================================================================
# ДОМЕННЫЕ НАГРУЗКИ
# =============================================================================

class PedidoPayload(_Payload):
    """Заказ на доставку."""
    entity_type: str = Field(default="Pedido", exclude=True)

    pedido_id: int | str | None = Field(default=None, alias="pedidoId")
    codigo: str | None = None
    cliente_id: int | str | None = Field(default=None, alias="clienteId")
    repartidor_id: int | str | None = Field(default=None, alias="repartidorId")
    estado: str | None = None
    tipo_entrega: str | None = Field(default=None, alias="tipoEntrega")
    direccion_origen: str | None = Field(default=None, alias="direccionOrigen")
    direccion_destino: str | None = Field(default=None, alias="direccionDestino")
    zona_id: int | str | None = Field(default=None, alias="zonaId")


class VehiculoPayload(_Payload):
    """Транспортное средство."""
    entity_type: str = Field(default="Vehiculo", exclude=True)

    id: int | str | None = None
    placa: str | None = None
    marca: str | None = None
    modelo: str | None = None
    tipo_vehiculo: str | None = Field(default=None, alias="tipoVehiculo")
    estado: str | None = None


class RepartidorPayload(_Payload):
    """Курьер."""
    entity_type: str = Field(default="Repartidor", exclude=True)

    id: int | str | None = None
    identificacion: str | None = None
    nombre: str | None = None
    apellido: str | None = None
    tipo_licencia: str | None = Field(default=None, alias="tipoLicencia")
    zona_id: int | str | None = Field(default=None, alias="zonaId")
    lat_actual: float | None = Field(default=None, alias="latActual")
    lng_actual: float | None = Field(default=None, alias="lngActual")


class FacturaPayload(_Payload):
    """Счёт."""
    entity_type: str = Field(default="Factura", exclude=True)

    factura_id: int | str | None = Field(default=None, alias="facturaId")
    numero_factura: str | None = Field(default=None, alias="numeroFactura")
    pedido_id: int | str | None = Field(default=None, alias="pedidoId")
    cliente_id: int | str | None = Field(default=None, alias="clienteId")
    total: float | None = None
    estado: str | None = None


class UsuarioPayload(_Payload):
    """Пользователь из auth-service."""
    entity_type: str = Field(default="USUARIO", exclude=True)

    usuario_id: str | None = Field(default=None, alias="usuarioId")
    username: str | None = None
    email: str | None = None
    roles: list[str] = Field(default_factory=list)
    zona_id: str | None = Field(default=None, alias="zonaId")


class OpaquePayload(_Payload):
    """Нагрузка неизвестного типа: исходный словарь как есть."""
    entity_type: str = Field(default="UNKNOWN", exclude=True)


EventPayload = Union[
    PedidoPayload,
    VehiculoPayload,
    RepartidorPayload,
    FacturaPayload,
    UsuarioPayload,
    OpaquePayload,
]

PAYLOAD_TYPES: dict[str, type[_Payload]] = {
    "Pedido": PedidoPayload,
    "Vehiculo": VehiculoPayload,
    "Repartidor": RepartidorPayload,
    "Factura": FacturaPayload,
    "USUARIO": UsuarioPayload,
}


def parse_payload(entity_type: str | None, data: dict[str, Any] | None) -> EventPayload:
    """
    Разбирает `data` в модель по entityType.

    Args:
        entity_type: Тип сущности из конверта
        data: Сырые данные события

    Returns:
        Типизированная нагрузка либо OpaquePayload
    """
    raw = dict(data or {})
    model = PAYLOAD_TYPES.get(entity_type or "")

    if model is not None:
        try:
            return model.model_validate(raw)
        except ValidationError:
            pass

    payload = OpaquePayload.model_validate(raw)
    if entity_type:
        payload.entity_type = entity_type
    return payload
