# logiflow/shared/events/routing.py
"""
Routing key общего exchange.

Формат ключа: `entity.verb` в нижнем регистре через точку
(`pedido.creado`, `pedido.estado.actualizado`). Шаблоны привязки очередей
используют AMQP-семантику: `*` ровно одно слово, `#` ноль или больше слов.
"""

from __future__ import annotations

import re
from functools import lru_cache

_WORD_RE = re.compile(r"^[a-z0-9_-]+$")


class InvalidRoutingKeyError(ValueError):
    """Routing key не подходит для публикации."""


def validate_routing_key(routing_key: str) -> str:
    """
    Проверяет ключ для публикации.
    Запрещены пустые сегменты, верхний регистр и символы шаблонов.

    Raises:
        InvalidRoutingKeyError: ключ некорректен
    """
    if not routing_key:
        raise InvalidRoutingKeyError("Пустой routing key")

    for word in routing_key.split("."):
        if not _WORD_RE.match(word):
            raise InvalidRoutingKeyError(f"Некорректный routing key: {routing_key!r}")

    return routing_key


def routing_key_from_action(action: str) -> str:
    """
    Выводит routing key из действия.

    Example:
        >>> routing_key_from_action("PEDIDO_EN_RUTA")
        'pedido.en.ruta'
    """
    words = [w for w in action.strip().lower().split("_") if w]
    return validate_routing_key(".".join(words))


def action_from_event_type(event_type: str) -> str:
    """`usuario.creado` -> `USUARIO_CREADO`."""
    return event_type.upper().replace(".", "_")


@lru_cache(maxsize=512)
def _split(value: str) -> tuple[str, ...]:
    return tuple(value.split("."))


def routing_key_matches(pattern: str, routing_key: str) -> bool:
    """
    Совпадает ли routing key с шаблоном привязки так же, как решил бы брокер.

    Example:
        >>> routing_key_matches("factura.*", "factura.pagada")
        True
        >>> routing_key_matches("pedido.*", "pedido.estado.actualizado")
        False
        >>> routing_key_matches("#", "pedido.estado.actualizado")
        True
    """
    return _match(_split(pattern), _split(routing_key))


def _match(pattern: tuple[str, ...], words: tuple[str, ...]) -> bool:
    if not pattern:
        return not words

    head, rest = pattern[0], pattern[1:]

    if head == "#":
        # `#` поглощает от нуля до всех оставшихся слов
        return any(_match(rest, words[i:]) for i in range(len(words) + 1))

    if not words:
        return False

    if head == "*" or head == words[0]:
        return _match(rest, words[1:])

    return False


def routing_key_to_topic(routing_key: str) -> str:
    """Топик WebSocket из routing key: `pedido.estado.actualizado` -> `pedido/estado/actualizado`."""
    return routing_key.replace(".", "/")
