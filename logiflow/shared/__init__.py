# logiflow/shared/__init__.py
"""
Общий контракт сервисов: конверт событий, routing keys, модели.
"""
