# logiflow/notifications/__init__.py
"""
Сервис уведомлений: журнал событий с идемпотентным приёмом.
"""
