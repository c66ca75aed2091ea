# logiflow/worker/__init__.py
"""
Консьюмеры RabbitMQ.
"""

from logiflow.worker.base import BaseConsumer
from logiflow.worker.notifications import NotificationConsumer

__all__ = ["BaseConsumer", "NotificationConsumer"]
