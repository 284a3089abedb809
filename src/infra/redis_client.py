# src/infra/redis_client.py
"""
Клиент Redis.
Pub/Sub каналы статусов оплаты и распределённые локи
для периодических задач.
"""

from __future__ import annotations

import json
from typing import Any
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.common.constants import TypeMsg
from src.common.exceptions import ExternalServiceError
from src.common.logger import log_error, log_info

# Снимает лок, только если он всё ещё наш
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisClient:
    """
    Асинхронный клиент Redis (Singleton на процесс).
    Все ключи и каналы получают префикс namespace.
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "courier"

    @property
    def client(self) -> redis.Redis:
        """Низкоуровневый клиент redis-py."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """Подключается к Redis и проверяет соединение PING-ом."""
        if self._client is not None:
            return

        if namespace:
            self._namespace = namespace

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    # =========================================================================
    # PUB/SUB
    # =========================================================================

    async def publish(self, channel: str, data: dict[str, Any]) -> int:
        """
        Публикует JSON-сообщение в канал.

        Returns:
            Количество подписчиков, получивших сообщение

        Raises:
            ExternalServiceError: Redis недоступен или не подключён
        """
        if self._client is None:
            raise ExternalServiceError("Redis не подключён", details={"channel": channel})

        payload = json.dumps(data, ensure_ascii=False, default=str)
        try:
            return await self._client.publish(self._make_key(channel), payload)
        except (RedisError, OSError) as e:
            raise ExternalServiceError(f"Redis недоступен: {e}", details={"channel": channel}) from e

    # =========================================================================
    # ЛОКИ
    # =========================================================================

    async def acquire_lock(self, name: str, ttl: int) -> str | None:
        """
        Пытается взять лок SET NX EX.

        Returns:
            Токен владельца или None, если лок занят
        """
        token = str(uuid4())
        acquired = await self.client.set(self._make_key(f"lock:{name}"), token, nx=True, ex=ttl)
        return token if acquired else None

    async def release_lock(self, name: str, token: str) -> bool:
        """Снимает лок, если он принадлежит владельцу токена."""
        result = await self.client.eval(_RELEASE_LOCK_SCRIPT, 1, self._make_key(f"lock:{name}"), token)
        return bool(result)

    async def health_check(self) -> bool:
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> None:
    """Подключается к Redis по настройкам."""
    from src.config import settings

    await get_redis().connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    await get_redis().disconnect()
