# logiflow/services/realtime_ws/registry.py
"""
Реестр живых WebSocket соединений.

Только в памяти процесса: при закрытии соединение удаляется сразу,
ни буфера, ни повторной доставки нет.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

from fastapi import WebSocket

from logiflow.services.realtime_ws.identity import Identity


@dataclass
class ClientInfo:
    """Информация о соединении."""
    websocket: WebSocket
    id: str = field(default_factory=lambda: str(uuid4()))
    identity: Identity | None = None
    subscriptions: set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_anonymous(self) -> bool:
        return self.identity is None

    @property
    def user_id(self) -> int | str | None:
        return self.identity.user_id if self.identity else None

    @property
    def username(self) -> str | None:
        return self.identity.username if self.identity else None

    def to_dict(self) -> dict[str, Any]:
        """Для логов и статистики."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "username": self.username,
            "roles": list(self.identity.roles) if self.identity else [],
            "zonaId": self.identity.zona_id if self.identity else None,
            "subscriptions": sorted(self.subscriptions),
        }


class ConnectionRegistry:
    """
    Соединение -> ClientInfo.

    Изменения под asyncio.Lock. Обход через for_each идёт по снимку,
    поэтому подключения и отключения во время рассылки его не ломают.
    """

    def __init__(self) -> None:
        self._clients: dict[int, ClientInfo] = {}
        self._lock = asyncio.Lock()
        self._total_connections = 0

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, websocket: object) -> bool:
        return id(websocket) in self._clients

    @property
    def total_connections(self) -> int:
        """Сколько соединений было зарегистрировано за жизнь процесса."""
        return self._total_connections

    async def register(self, websocket: WebSocket, identity: Identity | None = None) -> ClientInfo:
        """Регистрирует соединение (повторная регистрация возвращает существующую запись)."""
        async with self._lock:
            existing = self._clients.get(id(websocket))
            if existing is not None:
                return existing

            client = ClientInfo(websocket=websocket, identity=identity)
            self._clients[id(websocket)] = client
            self._total_connections += 1
            return client

    def get(self, websocket: WebSocket) -> ClientInfo | None:
        return self._clients.get(id(websocket))

    async def remove(self, websocket: WebSocket) -> bool:
        """
        Удаляет соединение.

        Returns:
            True только при первом удалении
        """
        async with self._lock:
            return self._clients.pop(id(websocket), None) is not None

    def snapshot(self) -> list[ClientInfo]:
        return list(self._clients.values())

    async def for_each(self, fn: Callable[[ClientInfo], Awaitable[Any]]) -> list[Any]:
        """Вызывает fn для всех соединений из снимка одновременно; порядок результатов как в снимке."""
        return list(await asyncio.gather(*(fn(client) for client in self.snapshot())))
