# logiflow/services/realtime_ws/bridge.py
"""
Мост событий exchange -> WebSocket клиенты.

Протокол клиента (JSON):
- {"type": "SUBSCRIBE", "topic": "pedido/*"}    -> SUBSCRIBED
- {"type": "UNSUBSCRIBE", "topic": "pedido/*"}  -> UNSUBSCRIBED
- {"type": "PING"}                              -> PONG (timestamp в мс)
- другое                                        -> UNKNOWN
- не JSON (текстовый или бинарный кадр)         -> ERROR, соединение остаётся открытым

Рассылка:
- EVENT {topic, data, timestamp} подписчикам топика
- BROADCAST {data, timestamp} всем
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from logiflow.common.constants import TypeMsg
from logiflow.common.logger import log_debug, log_info, log_warning
from logiflow.services.realtime_ws.identity import Identity, TokenError, TokenVerifier
from logiflow.services.realtime_ws.registry import ClientInfo, ConnectionRegistry
from logiflow.services.realtime_ws.topics import routing_key_to_topic, service_topic, topic_matches

WELCOME_MESSAGE = "Conectado al servidor WebSocket de LogiFlow"
INVALID_MESSAGE = {"type": "ERROR", "message": "Mensaje inválido"}

DEFAULT_SEND_TIMEOUT = 5.0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BroadcastBridge:
    """
    Рассылает события exchange подписанным WebSocket клиентам.

    Поддерживает:
    - Подключение с необязательным JWT (анонимные клиенты разрешены)
    - Подписки с префиксным шаблоном `*`
    - Рассылку по топику и всем
    - Статистику соединений и отправленных сообщений
    """

    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        verifier: TokenVerifier | None = None,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self.registry = registry or ConnectionRegistry()
        self.verifier = verifier or TokenVerifier()
        self.send_timeout = send_timeout
        self._total_messages_sent = 0
        self._total_events_relayed = 0

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ СОЕДИНЕНИЯ
    # =========================================================================

    async def connect(self, websocket: WebSocket, token: str | None = None) -> ClientInfo:
        """Принимает соединение, помечает его по токену и шлёт CONNECTED."""
        identity = await self._resolve_identity(token)

        await websocket.accept()
        client = await self.registry.register(websocket, identity)

        await log_info(
            f"🔌 WebSocket подключен: {client.id} ({client.username or 'аноним'})",
            type_msg=TypeMsg.INFO,
            extra={"client_id": client.id, "user_id": client.user_id},
        )

        await self._send(websocket, {
            "type": "CONNECTED",
            "clientId": client.id,
            "message": WELCOME_MESSAGE,
        })
        return client

    async def disconnect(self, websocket: WebSocket) -> bool:
        """Удаляет соединение из реестра (повторный вызов ничего не делает)."""
        client = self.registry.get(websocket)
        removed = await self.registry.remove(websocket)
        if removed and client is not None:
            await log_info(f"🔌 WebSocket отключен: {client.id}", type_msg=TypeMsg.INFO)
        return removed

    async def _resolve_identity(self, token: str | None) -> Identity | None:
        if not token:
            return None
        try:
            return self.verifier.verify(token)
        except TokenError as e:
            await log_warning(f"Токен WebSocket не принят, клиент анонимный: {e}")
            return None

    # =========================================================================
    # СООБЩЕНИЯ КЛИЕНТА
    # =========================================================================

    async def handle_client_message(self, websocket: WebSocket, raw: str | bytes) -> None:
        """Обрабатывает один кадр клиента; бинарный кадр читается как UTF-8."""
        client = self.registry.get(websocket)
        if client is None:
            return

        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            data = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError):
            await self._send(websocket, INVALID_MESSAGE)
            return

        if not isinstance(data, dict):
            await self._send(websocket, INVALID_MESSAGE)
            return

        msg_type = data.get("type")
        topic = data.get("topic")

        if msg_type == "SUBSCRIBE":
            if topic:
                client.subscriptions.add(str(topic))
                await log_debug(f"Клиент {client.id} подписан на {topic}")
                await self._send(websocket, {
                    "type": "SUBSCRIBED",
                    "topic": topic,
                    "message": f"Suscrito a {topic}",
                })

        elif msg_type == "UNSUBSCRIBE":
            if topic:
                client.subscriptions.discard(str(topic))
                await self._send(websocket, {"type": "UNSUBSCRIBED", "topic": topic})

        elif msg_type == "PING":
            await self._send(websocket, {"type": "PONG", "timestamp": int(time.time() * 1000)})

        else:
            await self._send(websocket, {"type": "UNKNOWN", "message": "Tipo de mensaje no reconocido"})

    # =========================================================================
    # РАССЫЛКА
    # =========================================================================

    async def broadcast_to_topic(self, topic: str, data: Any) -> int:
        """
        Отправляет EVENT всем клиентам, чья подписка совпадает с топиком.

        Returns:
            Количество успешно отправленных сообщений
        """
        message = {"type": "EVENT", "topic": topic, "data": data, "timestamp": _now_iso()}

        async def send_if_subscribed(client: ClientInfo) -> bool:
            if any(topic_matches(sub, topic) for sub in list(client.subscriptions)):
                return await self._send(client.websocket, message)
            return False

        results = await self.registry.for_each(send_if_subscribed)
        return sum(1 for sent in results if sent)

    async def broadcast_to_all(self, data: Any) -> int:
        """Отправляет BROADCAST всем открытым соединениям."""
        message = {"type": "BROADCAST", "data": data, "timestamp": _now_iso()}

        async def send(client: ClientInfo) -> bool:
            return await self._send(client.websocket, message)

        results = await self.registry.for_each(send)
        return sum(1 for sent in results if sent)

    async def handle_exchange_event(self, routing_key: str, event: dict[str, Any]) -> int:
        """
        Пересылает событие exchange: в топик routing key и в `<microservice>/*`.

        Returns:
            Суммарное количество отправленных сообщений
        """
        self._total_events_relayed += 1
        topic = routing_key_to_topic(routing_key)

        sent = await self.broadcast_to_topic(topic, event)

        microservice = event.get("microservice")
        if microservice:
            sent += await self.broadcast_to_topic(service_topic(microservice), event)

        await log_debug(f"📡 Событие {routing_key} -> {topic}: отправлено {sent}")
        return sent

    async def _send(self, websocket: WebSocket, payload: dict[str, Any]) -> bool:
        """Отправка одному клиенту; закрытый сокет, ошибка или таймаут пропускаются."""
        if websocket.client_state != WebSocketState.CONNECTED:
            return False
        try:
            await asyncio.wait_for(
                websocket.send_text(json.dumps(payload, ensure_ascii=False, default=str)),
                timeout=self.send_timeout,
            )
        except Exception as e:
            await log_warning(f"Не удалось отправить сообщение WebSocket клиенту: {e!r}")
            return False
        self._total_messages_sent += 1
        return True

    # =========================================================================
    # СТАТИСТИКА
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Статистика соединений."""
        clients = self.registry.snapshot()
        anonymous = sum(1 for c in clients if c.is_anonymous)
        return {
            "active_connections": len(clients),
            "identified_connections": len(clients) - anonymous,
            "anonymous_connections": anonymous,
            "total_subscriptions": sum(len(c.subscriptions) for c in clients),
            "total_connections_ever": self.registry.total_connections,
            "total_messages_sent": self._total_messages_sent,
            "total_events_relayed": self._total_events_relayed,
        }
