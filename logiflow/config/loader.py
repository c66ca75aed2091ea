# logiflow/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины - config/config.json.
Секреты и адреса инфраструктуры переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить LOGIFLOW_CONFIG)."""
    override = os.getenv("LOGIFLOW_CONFIG")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "logiflow"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    COMPONENT_MODE: str = "all"


class DeploymentSettings(BaseModel):
    """Адреса и порты компонентов."""
    GATEWAY_HOST: str = "0.0.0.0"
    GATEWAY_PORT: int = 8000
    GATEWAY_WS_PATH: str = "/ws"
    NOTIFICATIONS_HOST: str = "0.0.0.0"
    NOTIFICATIONS_PORT: int = 8086


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL (хранилище уведомлений)."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "logiflow_notifications"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 60
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения, если не задан."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ и топологии exchange."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "logiflow.events"
    RABBITMQ_PREFETCH_COUNT: int = 10
    RABBITMQ_CONNECT_ATTEMPTS: int = 5
    RABBITMQ_CONNECT_DELAY: float = 2.0
    RABBITMQ_PUBLISH_RETRIES: int = 2
    RABBITMQ_PUBLISH_RETRY_DELAY: float = 0.2

    NOTIFICATIONS_QUEUE: str = "notifications.queue"
    NOTIFICATIONS_BINDINGS: list[str] = Field(
        default_factory=lambda: ["pedido.*", "vehiculo.*", "repartidor.*", "factura.*"]
    )
    BROADCAST_QUEUE: str = "websocket.broadcast"
    BROADCAST_BINDINGS: list[str] = Field(default_factory=lambda: ["#"])

    DEAD_LETTER_EXCHANGE: str = "logiflow.events.dlx"
    NOTIFICATIONS_DLQ: str = "notifications.dlq"

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Пароль из окружения имеет приоритет."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @field_validator("RABBITMQ_PREFETCH_COUNT", "RABBITMQ_CONNECT_ATTEMPTS")
    @classmethod
    def check_positive(cls, v: int) -> int:
        """Prefetch и число попыток должны быть положительными."""
        if v < 1:
            raise ValueError("Значение должно быть >= 1")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        vhost = self.RABBITMQ_VHOST if self.RABBITMQ_VHOST.startswith("/") else f"/{self.RABBITMQ_VHOST}"
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{vhost}"
        )


class NotificationSettings(BaseModel):
    """Настройки сервиса уведомлений."""
    LIST_DEFAULT_LIMIT: int = 100
    LIST_MAX_LIMIT: int = 1000
    MAX_DELIVERY_ATTEMPTS: int = 5
    MARK_PROCESSED_ON_DISPATCH: bool = True


class AuthSettings(BaseModel):
    """Проверка JWT на WebSocket (только для пометки соединения)."""
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    @field_validator("JWT_SECRET", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Секрет берётся из JWT_SECRET, если не задан в конфиге."""
        if not v:
            return os.getenv("JWT_SECRET", "")
        return v


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """
        Раскладывает плоский словарь config.json по секциям.
        Хосты, пароли и секреты переопределяются из переменных окружения.
        """
        def pick(model: type[BaseModel], env_keys: tuple[str, ...] = ()) -> dict[str, Any]:
            values = {k: data[k] for k in model.model_fields if k in data}
            for key in env_keys:
                env_value = os.getenv(key)
                if env_value:
                    values[key] = env_value
            return values

        system = pick(SystemSettings, ("COMPONENT_MODE", "ENVIRONMENT"))
        logging_values = pick(LoggingSettings, ("LOG_LEVEL", "LOG_FORMAT"))

        return cls(
            system=SystemSettings(**system),
            deployment=DeploymentSettings(**pick(DeploymentSettings, ("GATEWAY_PORT", "NOTIFICATIONS_PORT"))),
            logging=LoggingSettings(**logging_values),
            database=DatabaseSettings(**pick(
                DatabaseSettings, ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD"),
            )),
            rabbitmq=RabbitMQSettings(**pick(
                RabbitMQSettings, ("RABBITMQ_HOST", "RABBITMQ_PORT", "RABBITMQ_USER", "RABBITMQ_PASSWORD", "RABBITMQ_VHOST"),
            )),
            notifications=NotificationSettings(**pick(NotificationSettings)),
            auth=AuthSettings(**pick(AuthSettings, ("JWT_SECRET",))),
        )

    @classmethod
    def from_config_json(cls) -> "Settings":
        """Создаёт объект Settings из config.json."""
        return cls.from_dict(load_config_json())


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением config.json подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


settings = get_settings()
