# logiflow/shared/events/__init__.py
"""
Контракт событий общего exchange `logiflow.events`.

- envelope: конверт события (JSON, camelCase)
- routing: routing keys и AMQP-сопоставление шаблонов
- payloads: типизированные нагрузки по entityType
- producer: публикация с результатом PublishResult
- pedido_events / fleet_events / billing_events / user_events: продюсеры сервисов

Все события идемпотентны и содержат eventId для дедупликации.
"""

from logiflow.shared.events.envelope import EventEnvelope, InvalidEnvelopeError
from logiflow.shared.events.payloads import (
    EventPayload,
    FacturaPayload,
    OpaquePayload,
    PedidoPayload,
    RepartidorPayload,
    UsuarioPayload,
    VehiculoPayload,
    parse_payload,
)
from logiflow.shared.events.producer import EventProducer, PublishResult
from logiflow.shared.events.routing import (
    InvalidRoutingKeyError,
    routing_key_from_action,
    routing_key_matches,
    routing_key_to_topic,
    validate_routing_key,
)

__all__ = [
    # Envelope
    "EventEnvelope",
    "InvalidEnvelopeError",
    # Payloads
    "EventPayload",
    "FacturaPayload",
    "OpaquePayload",
    "PedidoPayload",
    "RepartidorPayload",
    "UsuarioPayload",
    "VehiculoPayload",
    "parse_payload",
    # Producer
    "EventProducer",
    "PublishResult",
    # Routing
    "InvalidRoutingKeyError",
    "routing_key_from_action",
    "routing_key_matches",
    "routing_key_to_topic",
    "validate_routing_key",
]
