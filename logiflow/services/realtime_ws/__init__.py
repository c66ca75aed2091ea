# logiflow/services/realtime_ws/__init__.py
"""
Шлюз реального времени: WebSocket мост событий exchange.

Компоненты:
- registry: реестр живых соединений
- topics: топики и сопоставление подписок
- identity: JWT пометка клиента
- bridge: протокол клиента и рассылка
- consumer: очередь websocket.broadcast
- app: FastAPI приложение (/ws, /health, /stats, /broadcast)
"""

from logiflow.services.realtime_ws.bridge import BroadcastBridge
from logiflow.services.realtime_ws.registry import ClientInfo, ConnectionRegistry

__all__ = ["BroadcastBridge", "ClientInfo", "ConnectionRegistry"]
