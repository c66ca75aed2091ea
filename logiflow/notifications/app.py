# logiflow/notifications/app.py
"""
FastAPI приложение сервиса уведомлений.

Консьюмер `notifications.queue` сохраняет события, HTTP API отдаёт журнал.

REST endpoints:
- GET   /notifications?limit=100          - последние уведомления
- GET   /notifications/microservice/{ms}  - по сервису-источнику
- GET   /notifications/severity/{sev}     - по важности (INFO/WARN/ERROR)
- GET   /notifications/pending            - необработанные
- GET   /notifications/stats              - статистика
- PATCH /notifications/{id}/process       - пометить обработанным
- GET   /health                           - проверка здоровья
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from logiflow.common.constants import Severity, TypeMsg
from logiflow.common.logger import log_error, log_info, setup_logging
from logiflow.infra.database import DatabaseManager, get_db
from logiflow.infra.event_bus import EventBus
from logiflow.notifications.service import NotificationNotFoundError, NotificationService
from logiflow.shared.models.common import HealthStatus
from logiflow.shared.models.notification import NotificationRecord, NotificationStats
from logiflow.worker.notifications import NotificationConsumer

SERVICE_NAME = "notification-service"


# =============================================================================
# ЗАВИСИМОСТИ
# =============================================================================

def get_notification_service(request: Request) -> NotificationService:
    """Сервис уведомлений приложения."""
    return request.app.state.notification_service


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Старт: БД и схема, затем консьюмер в фоне.
    Недоступный брокер не мешает HTTP API (деградированный режим).
    """
    setup_logging()
    app.state.started_at = time.monotonic()

    if app.state.manage_infra:
        from logiflow.infra.database import close_db, init_db
        from logiflow.infra.event_bus import close_event_bus

        await init_db()
        await app.state.notification_service.repository.ensure_schema()

        consumer: NotificationConsumer = app.state.consumer or NotificationConsumer(
            service=app.state.notification_service,
            event_bus=app.state.event_bus,
        )
        app.state.consumer = consumer
        consumer.start_in_background()

    await log_info("Сервис уведомлений запущен", type_msg=TypeMsg.INFO)

    try:
        yield
    finally:
        if app.state.manage_infra:
            if app.state.consumer is not None:
                await app.state.consumer.stop()
            await close_event_bus()
            await close_db()

        await log_info("Сервис уведомлений остановлен", type_msg=TypeMsg.INFO)


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

def create_app(
    service: NotificationService | None = None,
    event_bus: EventBus | None = None,
    consumer: NotificationConsumer | None = None,
    db: DatabaseManager | None = None,
    manage_infra: bool = True,
) -> FastAPI:
    """
    Собирает приложение.

    Args:
        service: Сервис уведомлений (по умолчанию на PostgreSQL)
        event_bus: Шина событий
        consumer: Готовый консьюмер очереди
        db: Менеджер БД для /health (по умолчанию пул процесса)
        manage_infra: Подключать ли БД и брокер в lifespan
    """
    from logiflow.config import settings
    from logiflow.infra.event_bus import get_event_bus

    app = FastAPI(
        title="LogiFlow Notifications Service",
        description="Журнал уведомлений по событиям сервисов (RabbitMQ consumer + HTTP API)",
        version=settings.system.VERSION,
        lifespan=lifespan,
    )
    app.state.notification_service = service or NotificationService()
    app.state.event_bus = event_bus or get_event_bus()
    app.state.consumer = consumer
    app.state.db = db
    app.state.manage_infra = manage_infra
    app.state.started_at = time.monotonic()

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Проверка здоровья: БД или брокер недоступны -> degraded."""
        from logiflow.config import settings

        state = request.app.state
        db_ok = await (state.db or get_db()).health_check()
        broker_ok = await state.event_bus.health_check()
        consumer = state.consumer
        consumer_ok = consumer is not None and consumer.is_running

        return HealthStatus(
            service=SERVICE_NAME,
            status="healthy" if db_ok and broker_ok and consumer_ok else "degraded",
            version=settings.system.VERSION,
            uptime_seconds=round(time.monotonic() - state.started_at, 3),
            dependencies={
                "postgres": "healthy" if db_ok else "unavailable",
                "rabbitmq": "healthy" if broker_ok else "unavailable",
                "consumer": "running" if consumer_ok else "stopped",
            },
        )

    @app.get("/notifications", response_model=list[NotificationRecord], tags=["Notifications"])
    async def list_notifications(
        limit: int | None = Query(default=None, description="Сколько записей вернуть (1..1000)"),
        service: NotificationService = Depends(get_notification_service),
    ) -> list[NotificationRecord]:
        """Последние уведомления, новые первыми."""
        return await service.list_all(limit)

    @app.get("/notifications/pending", response_model=list[NotificationRecord], tags=["Notifications"])
    async def list_pending(
        service: NotificationService = Depends(get_notification_service),
    ) -> list[NotificationRecord]:
        return await service.list_unprocessed()

    @app.get("/notifications/stats", response_model=NotificationStats, tags=["Notifications"])
    async def get_stats(
        service: NotificationService = Depends(get_notification_service),
    ) -> NotificationStats:
        return await service.get_statistics()

    @app.get(
        "/notifications/microservice/{microservice}",
        response_model=list[NotificationRecord],
        tags=["Notifications"],
    )
    async def list_by_microservice(
        microservice: str,
        service: NotificationService = Depends(get_notification_service),
    ) -> list[NotificationRecord]:
        return await service.list_by_microservice(microservice)

    @app.get(
        "/notifications/severity/{severity}",
        response_model=list[NotificationRecord],
        tags=["Notifications"],
    )
    async def list_by_severity(
        severity: str,
        service: NotificationService = Depends(get_notification_service),
    ) -> list[NotificationRecord]:
        """Уровень важности без учёта регистра."""
        try:
            return await service.list_by_severity(severity)
        except ValueError:
            allowed = ", ".join(s.value for s in Severity)
            raise HTTPException(status_code=422, detail=f"Severity inválida: {severity}. Valores: {allowed}")

    @app.patch(
        "/notifications/{notification_id}/process",
        response_model=NotificationRecord,
        tags=["Notifications"],
    )
    async def mark_processed(
        notification_id: int,
        service: NotificationService = Depends(get_notification_service),
    ) -> NotificationRecord:
        try:
            return await service.mark_processed(notification_id)
        except NotificationNotFoundError as e:
            await log_error(str(e))
            raise HTTPException(status_code=404, detail="Notificación no encontrada")


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from logiflow.config import settings

    uvicorn.run(app, host=settings.deployment.NOTIFICATIONS_HOST, port=settings.deployment.NOTIFICATIONS_PORT)
