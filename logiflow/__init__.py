# logiflow/__init__.py
"""
LogiFlow Events - событийная подсистема LogiFlow.

Компоненты:
- shared.events: контракт конвертов и exchange, продюсеры
- worker: durable-консьюмеры RabbitMQ
- notifications: идемпотентный приём событий и API уведомлений
- services.realtime_ws: WebSocket-мост шлюза
"""

__version__ = "1.0.0"
