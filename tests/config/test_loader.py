# tests/config/test_loader.py
"""
Тесты загрузчика конфигурации.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from logiflow.config.loader import (
    DatabaseSettings,
    LoggingSettings,
    RabbitMQSettings,
    Settings,
    get_config_path,
    get_project_root,
    load_config_json,
)


class TestPaths:
    """Тесты путей конфигурации."""

    def test_project_root(self, project_root: Path) -> None:
        assert get_project_root() == project_root
        assert (get_project_root() / "config" / "config.json").exists()

    def test_config_path_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        target = tmp_path / "custom.json"
        monkeypatch.setenv("LOGIFLOW_CONFIG", str(target))

        assert get_config_path() == target


class TestLoadConfigJson:
    """Тесты для load_config_json."""

    def test_comments_dropped(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"_comment_x": "texto", "LOG_LEVEL": "INFO"}), encoding="utf-8")

        assert load_config_json(path) == {"LOG_LEVEL": "INFO"}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config_json(tmp_path / "nope.json")

    def test_project_config_values(self, config_path: Path) -> None:
        data = load_config_json(config_path)

        assert data["RABBITMQ_EXCHANGE"] == "logiflow.events"
        assert data["NOTIFICATIONS_BINDINGS"] == ["pedido.*", "vehiculo.*", "repartidor.*", "factura.*"]
        assert data["BROADCAST_BINDINGS"] == ["#"]
        assert not any(k.startswith("_comment_") for k in data)


class TestSettings:
    """Тесты для Settings.from_dict."""

    def test_sections(self) -> None:
        settings = Settings.from_dict({
            "RABBITMQ_PREFETCH_COUNT": 20,
            "LIST_MAX_LIMIT": 500,
            "GATEWAY_WS_PATH": "/events",
        })

        assert settings.rabbitmq.RABBITMQ_PREFETCH_COUNT == 20
        assert settings.notifications.LIST_MAX_LIMIT == 500
        assert settings.deployment.GATEWAY_WS_PATH == "/events"
        assert settings.notifications.MAX_DELIVERY_ATTEMPTS == 5

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RABBITMQ_HOST", "rabbitmq")
        monkeypatch.setenv("DB_HOST", "postgres")
        monkeypatch.setenv("JWT_SECRET", "env-secret")

        settings = Settings.from_dict({"RABBITMQ_HOST": "localhost", "DB_HOST": "localhost"})

        assert settings.rabbitmq.RABBITMQ_HOST == "rabbitmq"
        assert settings.database.DB_HOST == "postgres"
        assert settings.auth.JWT_SECRET == "env-secret"

    def test_invalid_prefetch(self) -> None:
        with pytest.raises(ValidationError):
            Settings.from_dict({"RABBITMQ_PREFETCH_COUNT": 0})


class TestSections:
    """Тесты отдельных секций."""

    def test_rabbitmq_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RABBITMQ_PASSWORD", "secret")
        section = RabbitMQSettings(RABBITMQ_HOST="mq", RABBITMQ_VHOST="logiflow")

        assert section.url == "amqp://guest:secret@mq:5672/logiflow"

    def test_rabbitmq_default_vhost(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RABBITMQ_PASSWORD", "guest")

        assert RabbitMQSettings().url.endswith("@localhost:5672/")

    def test_database_dsn(self) -> None:
        section = DatabaseSettings(DB_PASSWORD="pw", DB_HOST="db")

        assert section.dsn == "postgresql://postgres:pw@db:5432/logiflow_notifications"

    def test_database_password_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_PASSWORD", "from-env")

        assert DatabaseSettings(DB_PASSWORD="").DB_PASSWORD == "from-env"

    def test_log_format_validator(self) -> None:
        assert LoggingSettings(LOG_FORMAT="json").LOG_FORMAT == "json"
        with pytest.raises(ValidationError):
            LoggingSettings(LOG_FORMAT="xml")
