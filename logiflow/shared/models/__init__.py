# logiflow/shared/models/__init__.py
"""
Pydantic модели, общие для сервисов.
"""

from logiflow.shared.models.common import ErrorResponse, HealthStatus
from logiflow.shared.models.notification import (
    MicroserviceCount,
    NotificationRecord,
    NotificationStats,
    SeverityCount,
)

__all__ = [
    "ErrorResponse",
    "HealthStatus",
    "MicroserviceCount",
    "NotificationRecord",
    "NotificationStats",
    "SeverityCount",
]
