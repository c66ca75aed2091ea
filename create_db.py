# create_db.py
"""
Создаёт базу данных сервиса уведомлений и таблицу notifications.
"""

import asyncio

import asyncpg

from logiflow.config import settings
from logiflow.infra.database import close_db, init_db
from logiflow.notifications.repository import NotificationRepository


async def create_db() -> None:
    db_name = settings.database.DB_NAME

    try:
        # Подключаемся к служебной БД postgres, чтобы создать новую
        sys_conn = await asyncpg.connect(
            user=settings.database.DB_USER,
            password=settings.database.DB_PASSWORD,
            host=settings.database.DB_HOST,
            port=settings.database.DB_PORT,
            database="postgres",
        )

        exists = await sys_conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name)
        if not exists:
            print(f"Creating database {db_name}...")
            await sys_conn.execute(f'CREATE DATABASE "{db_name}"')
            print("Database created.")
        else:
            print(f"Database {db_name} already exists.")

        await sys_conn.close()

        db = await init_db()
        await NotificationRepository(db).ensure_schema()
        print("Table notifications is ready.")
        await close_db()

    except Exception as e:
        print(f"Error: {e}")


if __name__ == "__main__":
    asyncio.run(create_db())
