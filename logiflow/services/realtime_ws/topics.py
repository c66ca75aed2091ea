# logiflow/services/realtime_ws/topics.py
"""
Топики WebSocket.

Топик = routing key с `/` вместо `.` (`pedido/creado`). Подписка с `*`
на конце совпадает по префиксу (`pedido/*`, `*`), иначе только точное
совпадение.
"""

from __future__ import annotations

from logiflow.shared.events.routing import routing_key_to_topic

__all__ = ["routing_key_to_topic", "service_topic", "topic_matches"]


def service_topic(microservice: str) -> str:
    """Топик всех событий сервиса: `pedido-service/*`."""
    return f"{microservice}/*"


def topic_matches(pattern: str, topic: str) -> bool:
    """
    Совпадает ли топик с подпиской.

    Example:
        >>> topic_matches("pedido/*", "pedido/creado")
        True
        >>> topic_matches("pedido/creado", "pedido/creado")
        True
        >>> topic_matches("pedido/creado", "pedido/cancelado")
        False
    """
    if pattern.endswith("*"):
        return topic.startswith(pattern[:-1])
    return pattern == topic
