# logiflow/infra/database.py
"""
PostgreSQL для журнала уведомлений.

Пул asyncpg создаётся один раз на процесс. Ошибки уровня соединения
повторяются DB_RETRY_ATTEMPTS раз с линейно растущей паузой; ошибки SQL
пробрасываются сразу.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

import asyncpg
from asyncpg import Pool, Record

from logiflow.common.constants import TypeMsg
from logiflow.common.logger import log_error, log_info, log_warning

if TYPE_CHECKING:
    from logiflow.config.loader import DatabaseSettings

T = TypeVar("T")

CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    ConnectionRefusedError,
    OSError,
)


class DatabaseManager:
    """Пул соединений к базе уведомлений."""

    def __init__(self, config: DatabaseSettings | None = None) -> None:
        if config is None:
            from logiflow.config import settings
            config = settings.database

        self.config = config
        self._pool: Pool | None = None

    @property
    def pool(self) -> Pool:
        if self._pool is None:
            raise RuntimeError("Пул соединений не инициализирован. Вызовите connect() сначала.")
        return self._pool

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    # =========================================================================
    # ПОДКЛЮЧЕНИЕ
    # =========================================================================

    async def connect(self) -> None:
        """Создаёт пул (повторный вызов ничего не делает)."""
        if self._pool is not None:
            return

        cfg = self.config
        await log_info(
            f"Подключение к PostgreSQL {cfg.DB_HOST}:{cfg.DB_PORT}/{cfg.DB_NAME}...",
            type_msg=TypeMsg.INFO,
        )

        self._pool = await self._with_retry(
            "connect",
            lambda: asyncpg.create_pool(
                dsn=cfg.dsn,
                min_size=cfg.DB_MIN_POOL_SIZE,
                max_size=cfg.DB_MAX_POOL_SIZE,
                command_timeout=cfg.DB_COMMAND_TIMEOUT,
            ),
        )

        await log_info("✅ PostgreSQL подключен", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            await log_info("Соединение с PostgreSQL закрыто", type_msg=TypeMsg.INFO)

    async def _with_retry(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Повторяет `call` при потере соединения с БД."""
        attempts = max(1, self.config.DB_RETRY_ATTEMPTS)
        attempt = 1

        while True:
            try:
                return await call()
            except CONNECTION_ERRORS as e:
                if attempt >= attempts:
                    await log_error(f"БД недоступна ({operation}) после {attempts} попыток: {e}")
                    raise
                await log_warning(f"Ошибка подключения к БД ({operation}, попытка {attempt}/{attempts}): {e}")
                await asyncio.sleep(self.config.DB_RETRY_DELAY * attempt)
                attempt += 1

    # =========================================================================
    # ЗАПРОСЫ
    # =========================================================================

    async def _run(self, method: str, query: str, *args: Any) -> Any:
        async def call() -> Any:
            async with self.pool.acquire() as conn:
                return await getattr(conn, method)(query, *args)

        return await self._with_retry(method, call)

    async def execute(self, query: str, *args: Any) -> str:
        return await self._run("execute", query, *args)

    async def fetch(self, query: str, *args: Any) -> list[Record]:
        return await self._run("fetch", query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Record | None:
        return await self._run("fetchrow", query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._run("fetchval", query, *args)

    async def health_check(self) -> bool:
        """SELECT 1 через пул."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            await log_error(f"Health check PostgreSQL failed: {e}")
            return False


# Глобальный экземпляр
_db: DatabaseManager | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager()
    return _db


async def init_db() -> DatabaseManager:
    """Подключает пул процесса с настройками из конфига."""
    db = get_db()
    await db.connect()
    return db


async def close_db() -> None:
    global _db
    if _db is not None:
        await _db.disconnect()
        _db = None
