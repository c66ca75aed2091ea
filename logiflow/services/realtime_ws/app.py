# logiflow/services/realtime_ws/app.py
"""
FastAPI приложение шлюза реального времени.

WebSocket endpoints:
- /ws?token=<jwt> - события exchange по подпискам

REST endpoints:
- GET /health - проверка здоровья (брокер недоступен -> degraded)
- GET /stats - статистика соединений
- POST /broadcast - отправить сообщение в топик или всем
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from logiflow.common.constants import TypeMsg
from logiflow.common.logger import log_error, log_info, log_warning, setup_logging
from logiflow.infra.event_bus import EventBus
from logiflow.services.realtime_ws.bridge import BroadcastBridge
from logiflow.services.realtime_ws.consumer import BroadcastConsumer
from logiflow.services.realtime_ws.identity import TokenVerifier
from logiflow.services.realtime_ws.registry import ConnectionRegistry
from logiflow.shared.models.common import HealthStatus

SERVICE_NAME = "api-gateway"


# === MODELS ===

class BroadcastRequest(BaseModel):
    """Запрос на broadcast."""
    topic: str | None = None  # Если None - всем
    data: Any


class BroadcastResponse(BaseModel):
    sent_count: int


class StatsResponse(BaseModel):
    """Статистика соединений."""
    active_connections: int
    identified_connections: int
    anonymous_connections: int
    total_subscriptions: int
    total_connections_ever: int
    total_messages_sent: int
    total_events_relayed: int


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Жизненный цикл: консьюмер `websocket.broadcast` подключается в фоне."""
    setup_logging()
    app.state.started_at = time.monotonic()

    bridge: BroadcastBridge = app.state.bridge
    if not bridge.verifier.enabled:
        await log_warning("JWT_SECRET не задан: все WebSocket клиенты будут анонимными")

    consumer: BroadcastConsumer | None = None
    if app.state.manage_infra:
        consumer = BroadcastConsumer(bridge=bridge, event_bus=app.state.event_bus)
        app.state.consumer = consumer
        consumer.start_in_background()

    await log_info("Шлюз WebSocket запущен", type_msg=TypeMsg.INFO)

    try:
        yield
    finally:
        if consumer is not None:
            await consumer.stop()
            await app.state.event_bus.disconnect()
        await log_info("Шлюз WebSocket остановлен", type_msg=TypeMsg.INFO)


# === APP ===

def create_app(
    registry: ConnectionRegistry | None = None,
    verifier: TokenVerifier | None = None,
    event_bus: EventBus | None = None,
    manage_infra: bool = True,
) -> FastAPI:
    """
    Собирает приложение шлюза.

    Args:
        registry: Реестр соединений (новый на каждое приложение)
        verifier: Проверка JWT
        event_bus: Шина событий
        manage_infra: Подключать ли брокер в lifespan
    """
    from logiflow.config import settings
    from logiflow.infra.event_bus import get_event_bus

    app = FastAPI(
        title="LogiFlow Realtime Gateway",
        description="WebSocket мост событий exchange logiflow.events",
        version=settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.bridge = BroadcastBridge(registry=registry or ConnectionRegistry(), verifier=verifier)
    app.state.event_bus = event_bus or get_event_bus()
    app.state.consumer = None
    app.state.manage_infra = manage_infra
    app.state.started_at = time.monotonic()

    _register_routes(app, ws_path=settings.deployment.GATEWAY_WS_PATH)
    return app


def _register_routes(app: FastAPI, ws_path: str) -> None:

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Проверка здоровья сервиса."""
        from logiflow.config import settings

        state = request.app.state
        broker_ok = await state.event_bus.health_check()
        consumer = state.consumer
        consumer_ok = consumer is not None and consumer.is_running

        return HealthStatus(
            service=SERVICE_NAME,
            status="healthy" if broker_ok and consumer_ok else "degraded",
            version=settings.system.VERSION,
            uptime_seconds=round(time.monotonic() - state.started_at, 3),
            dependencies={
                "rabbitmq": "healthy" if broker_ok else "unavailable",
                "consumer": "running" if consumer_ok else "stopped",
            },
        )

    # === STATS ===

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats(request: Request) -> StatsResponse:
        """Получить статистику соединений."""
        return StatsResponse(**request.app.state.bridge.get_stats())

    # === BROADCAST ===

    @app.post("/broadcast", response_model=BroadcastResponse, tags=["Admin"])
    async def broadcast_message(body: BroadcastRequest, request: Request) -> BroadcastResponse:
        """
        Отправить сообщение клиентам.

        - Если указан `topic` - только подписчикам топика
        - Если `topic=null` - всем подключенным
        """
        bridge: BroadcastBridge = request.app.state.bridge
        if body.topic:
            sent = await bridge.broadcast_to_topic(body.topic, body.data)
        else:
            sent = await bridge.broadcast_to_all(body.data)
        return BroadcastResponse(sent_count=sent)

    # === WEBSOCKET ===

    @app.websocket(ws_path)
    async def websocket_endpoint(
        websocket: WebSocket,
        token: str | None = Query(default=None),
    ) -> None:
        """
        WebSocket клиента.

        Соединение принимается всегда; валидный токен помечает его
        пользователем, иначе клиент анонимный.
        """
        bridge: BroadcastBridge = websocket.app.state.bridge
        await bridge.connect(websocket, token)

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", 1000))

                raw = frame.get("text")
                if raw is None:
                    raw = frame.get("bytes") or b""
                await bridge.handle_client_message(websocket, raw)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            await log_error(f"Ошибка WebSocket соединения: {e}")
        finally:
            await bridge.disconnect(websocket)


app = create_app()


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn

    from logiflow.config import settings

    uvicorn.run(app, host=settings.deployment.GATEWAY_HOST, port=settings.deployment.GATEWAY_PORT)
