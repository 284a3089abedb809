# src/infra/database.py
"""
PostgreSQL через пул asyncpg.

Репозитории пишут SQL сами и получают Executor: вне транзакции это
DatabaseManager (каждый запрос берёт соединение из пула), внутри
transaction() это соединение, на котором держатся блокировки FOR UPDATE.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import wraps
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Protocol, TypeVar

import asyncpg
from asyncpg import Connection, Pool, Record

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, log_warning

T = TypeVar("T")

# Ошибки, после которых запрос имеет смысл повторить на новом соединении
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    ConnectionRefusedError,
    OSError,
)

# Ключ pg_advisory_xact_lock для применения схемы при старте
SCHEMA_LOCK_ID = 7340021


class Executor(Protocol):
    """Общий интерфейс DatabaseManager и asyncpg.Connection."""

    async def execute(self, query: str, *args: Any) -> str: ...

    async def fetch(self, query: str, *args: Any) -> list[Record]: ...

    async def fetchrow(self, query: str, *args: Any) -> Record | None: ...

    async def fetchval(self, query: str, *args: Any) -> Any: ...


def retry_on_connection_error(
    max_attempts: int = 3,
    delay: float = 1.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Повторяет корутину при обрыве соединения с БД.

    Ошибки SQL (нарушение ограничений, синтаксис) не повторяются
    и уходят вызывающему сразу.

    Args:
        max_attempts: Сколько всего попыток
        delay: Пауза перед второй попыткой, дальше растёт линейно
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except RETRYABLE_ERRORS as e:
                    if attempt == max_attempts:
                        await log_error(
                            f"БД недоступна после {max_attempts} попыток: {e}",
                            extra={"operation": func.__qualname__},
                        )
                        raise
                    await log_warning(
                        f"Обрыв соединения с БД, попытка {attempt}/{max_attempts}: {e}",
                        extra={"operation": func.__qualname__},
                    )
                    await asyncio.sleep(delay * attempt)
            raise RuntimeError("max_attempts должен быть больше нуля")

        return wrapper  # type: ignore

    return decorator


class DatabaseManager:
    """Пул соединений PostgreSQL (Singleton на процесс)."""

    _instance: DatabaseManager | None = None
    _pool: Pool | None = None

    def __new__(cls) -> DatabaseManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._pool = None

    @property
    def pool(self) -> Pool:
        if self._pool is None:
            raise RuntimeError("Пул PostgreSQL не создан, сначала вызовите connect()")
        return self._pool

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @retry_on_connection_error(max_attempts=5, delay=1.0)
    async def connect(
        self,
        dsn: str,
        min_size: int = 5,
        max_size: int = 20,
        command_timeout: int = 60,
    ) -> None:
        """Создаёт пул. Повторный вызов при живом пуле ничего не делает."""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
        )

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        await log_info("Пул PostgreSQL закрыт", type_msg=TypeMsg.INFO)

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Connection, None]:
        """
        Соединение с открытой транзакцией: commit при выходе из блока,
        rollback при исключении.

        Example:
            async with db.transaction() as conn:
                subscription = await repo.get_active_for_user(user_id, conn=conn, for_update=True)
                await repo.increment_used_orders(user_id, conn=conn)
        """
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                yield connection

    @retry_on_connection_error()
    async def _run(self, method: str, query: str, *args: Any, **kwargs: Any) -> Any:
        async with self.pool.acquire() as connection:
            return await getattr(connection, method)(query, *args, **kwargs)

    async def execute(self, query: str, *args: Any) -> str:
        """Статус команды, например "UPDATE 1"."""
        return await self._run("execute", query, *args)

    async def fetch(self, query: str, *args: Any) -> list[Record]:
        return await self._run("fetch", query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Record | None:
        return await self._run("fetchrow", query, *args)

    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any:
        return await self._run("fetchval", query, *args, column=column)

    async def health_check(self) -> bool:
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            await log_error(f"PostgreSQL не отвечает: {e}")
            return False


_db_manager: DatabaseManager | None = None


def get_db() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def apply_schema(db: DatabaseManager, schema_path: Path) -> bool:
    """
    Выполняет SQL-файл схемы. Процессы API и планировщика стартуют
    одновременно, поэтому файл применяется под advisory-локом.

    Returns:
        False, если файла нет
    """
    if not schema_path.exists():
        await log_error(f"Файл схемы БД не найден: {schema_path}")
        return False

    schema_sql = schema_path.read_text(encoding="utf-8")
    async with db.transaction() as conn:
        await conn.execute("SELECT pg_advisory_xact_lock($1)", SCHEMA_LOCK_ID)
        await conn.execute(schema_sql)

    await log_info(f"Схема БД применена: {schema_path.name}", type_msg=TypeMsg.INFO)
    return True


async def init_db(with_schema: bool = True) -> None:
    """Подключение по настройкам и применение migrations/init.sql."""
    from src.config import settings
    from src.config.loader import get_project_root

    section = settings.database
    db = get_db()
    await db.connect(
        dsn=section.dsn,
        min_size=section.DB_MIN_POOL_SIZE,
        max_size=section.DB_MAX_POOL_SIZE,
        command_timeout=section.DB_COMMAND_TIMEOUT,
    )
    await log_info(
        f"PostgreSQL подключён: {section.DB_HOST}:{section.DB_PORT}/{section.DB_NAME}",
        type_msg=TypeMsg.INFO,
    )

    if with_schema:
        await apply_schema(db, get_project_root() / "migrations" / "init.sql")


async def close_db() -> None:
    await get_db().disconnect()
