# logiflow/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Severity(str, Enum):
    """Важность события (определяет канал оповещения)."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class NotificationChannel(str, Enum):
    """Каналы оповещения, выбираемые по важности."""
    CRITICAL = "critical"            # SMS / срочный email
    STANDARD = "standard"            # email
    INFORMATIONAL = "informational"  # push


class PublishStatus(str, Enum):
    """Результат публикации события."""
    OK = "ok"
    BROKER_UNAVAILABLE = "broker_unavailable"
    REJECTED = "rejected"


class Microservice(str, Enum):
    """Имена сервисов-источников событий."""
    AUTH = "auth-service"
    PEDIDO = "pedido-service"
    FLEET = "fleet-service"
    BILLING = "billing-service"
    NOTIFICATION = "notification-service"
    GATEWAY = "api-gateway"
