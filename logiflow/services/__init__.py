# logiflow/services/__init__.py
"""
HTTP/WebSocket сервисы.
"""
