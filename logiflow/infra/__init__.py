# logiflow/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: PostgreSQL, RabbitMQ.
"""

from logiflow.infra.database import DatabaseManager, get_db
from logiflow.infra.event_bus import BrokerUnavailableError, EventBus, get_event_bus

__all__ = ["DatabaseManager", "get_db", "BrokerUnavailableError", "EventBus", "get_event_bus"]
