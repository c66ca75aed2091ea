# logiflow/notifications/repository.py
"""
Хранилище записей уведомлений (PostgreSQL, таблица notifications).
"""

from __future__ import annotations

import json

from logiflow.infra.database import DatabaseManager, get_db
from logiflow.shared.events.envelope import EventEnvelope
from logiflow.shared.models.notification import (
    MicroserviceCount,
    NotificationRecord,
    NotificationStats,
    SeverityCount,
)


SCHEMA_SQL = """
DO $$
BEGIN
    IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'notification_severity') THEN
        CREATE TYPE notification_severity AS ENUM ('INFO', 'WARN', 'ERROR');
    END IF;
END
$$;

CREATE TABLE IF NOT EXISTS notifications (
    id SERIAL PRIMARY KEY,
    event_id VARCHAR(255) NOT NULL UNIQUE,
    microservice VARCHAR(100) NOT NULL,
    action VARCHAR(100) NOT NULL,
    entity_type VARCHAR(100) NOT NULL,
    entity_id VARCHAR(255) NOT NULL DEFAULT '',
    message TEXT NOT NULL,
    severity notification_severity NOT NULL DEFAULT 'INFO',
    event_timestamp TIMESTAMPTZ NOT NULL,
    data JSONB NOT NULL DEFAULT '{}'::jsonb,
    processed BOOLEAN NOT NULL DEFAULT FALSE,
    processed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_notifications_microservice ON notifications (microservice);
CREATE INDEX IF NOT EXISTS idx_notifications_severity ON notifications (severity);
CREATE INDEX IF NOT EXISTS idx_notifications_created_at ON notifications (created_at DESC);
CREATE INDEX IF NOT EXISTS idx_notifications_pending ON notifications (processed) WHERE processed = FALSE;
"""

_COLUMNS = """
    id, event_id, microservice, action, entity_type, entity_id, message,
    severity::text AS severity, event_timestamp, data, processed, processed_at, created_at
"""


class NotificationRepository:
    """SQL доступ к таблице notifications."""

    def __init__(self, db: DatabaseManager | None = None) -> None:
        self.db = db or get_db()

    async def ensure_schema(self) -> None:
        """Создаёт тип severity, таблицу и индексы, если их нет."""
        await self.db.execute(SCHEMA_SQL)

    async def get_by_event_id(self, event_id: str) -> NotificationRecord | None:
        row = await self.db.fetchrow(
            f"SELECT {_COLUMNS} FROM notifications WHERE event_id = $1",
            event_id,
        )
        return NotificationRecord.from_row(row) if row else None

    async def get_by_id(self, notification_id: int) -> NotificationRecord | None:
        row = await self.db.fetchrow(
            f"SELECT {_COLUMNS} FROM notifications WHERE id = $1",
            notification_id,
        )
        return NotificationRecord.from_row(row) if row else None

    async def insert_if_absent(self, envelope: EventEnvelope) -> NotificationRecord | None:
        """
        Вставляет запись с processed=false.

        Returns:
            Новая запись или None, если eventId уже сохранён (в т.ч. параллельной доставкой)
        """
        row = await self.db.fetchrow(
            f"""
            INSERT INTO notifications (
                event_id, microservice, action, entity_type, entity_id,
                message, severity, event_timestamp, data
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7::notification_severity, $8, $9::jsonb)
            ON CONFLICT (event_id) DO NOTHING
            RETURNING {_COLUMNS}
            """,
            envelope.event_id,
            envelope.microservice or "unknown",
            envelope.action,
            envelope.entity_type,
            envelope.entity_id,
            envelope.message,
            envelope.severity.value,
            envelope.occurred_at,
            json.dumps(envelope.data, ensure_ascii=False, default=str),
        )
        return NotificationRecord.from_row(row) if row else None

    async def mark_processed(self, notification_id: int) -> NotificationRecord | None:
        """Ставит processed=true (время первой обработки сохраняется)."""
        row = await self.db.fetchrow(
            f"""
            UPDATE notifications
            SET processed = TRUE, processed_at = COALESCE(processed_at, NOW())
            WHERE id = $1
            RETURNING {_COLUMNS}
            """,
            notification_id,
        )
        return NotificationRecord.from_row(row) if row else None

    async def list_recent(self, limit: int) -> list[NotificationRecord]:
        rows = await self.db.fetch(
            f"SELECT {_COLUMNS} FROM notifications ORDER BY created_at DESC, id DESC LIMIT $1",
            limit,
        )
        return [NotificationRecord.from_row(r) for r in rows]

    async def list_by_microservice(self, microservice: str) -> list[NotificationRecord]:
        rows = await self.db.fetch(
            f"SELECT {_COLUMNS} FROM notifications WHERE microservice = $1 ORDER BY created_at DESC, id DESC",
            microservice,
        )
        return [NotificationRecord.from_row(r) for r in rows]

    async def list_by_severity(self, severity: str) -> list[NotificationRecord]:
        rows = await self.db.fetch(
            f"""
            SELECT {_COLUMNS} FROM notifications
            WHERE severity = $1::notification_severity
            ORDER BY created_at DESC, id DESC
            """,
            severity,
        )
        return [NotificationRecord.from_row(r) for r in rows]

    async def list_unprocessed(self) -> list[NotificationRecord]:
        rows = await self.db.fetch(
            f"SELECT {_COLUMNS} FROM notifications WHERE processed = FALSE ORDER BY created_at DESC, id DESC",
        )
        return [NotificationRecord.from_row(r) for r in rows]

    async def get_statistics(self) -> NotificationStats:
        totals = await self.db.fetchrow(
            """
            SELECT COUNT(*) AS total, COUNT(*) FILTER (WHERE processed) AS processed
            FROM notifications
            """
        )
        by_service = await self.db.fetch(
            """
            SELECT microservice, COUNT(*) AS count
            FROM notifications GROUP BY microservice ORDER BY count DESC, microservice
            """
        )
        by_severity = await self.db.fetch(
            """
            SELECT severity::text AS severity, COUNT(*) AS count
            FROM notifications GROUP BY severity ORDER BY severity
            """
        )

        total = int(totals["total"]) if totals else 0
        processed = int(totals["processed"]) if totals else 0

        return NotificationStats(
            total=total,
            processed=processed,
            pending=total - processed,
            by_microservice=[MicroserviceCount(microservice=r["microservice"], count=r["count"]) for r in by_service],
            by_severity=[SeverityCount(severity=r["severity"], count=r["count"]) for r in by_severity],
        )
