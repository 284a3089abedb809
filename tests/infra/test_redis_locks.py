# tests/infra/test_redis_locks.py
"""
Тесты RedisClient: namespace, публикация и локи.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.common.exceptions import ExternalServiceError
from src.infra.redis_client import RedisClient


@pytest.fixture
def redis_client(monkeypatch: pytest.MonkeyPatch) -> tuple[RedisClient, AsyncMock]:
    client = RedisClient()
    raw = AsyncMock()
    monkeypatch.setattr(client, "_client", raw)
    monkeypatch.setattr(client, "_namespace", "courier_test")
    return client, raw


class TestRedisClient:
    """Тесты RedisClient поверх замоканного redis-py."""

    def test_singleton(self) -> None:
        assert RedisClient() is RedisClient()

    @pytest.mark.asyncio
    async def test_publish_json_with_namespace(self, redis_client) -> None:
        client, raw = redis_client
        raw.publish.return_value = 2

        receivers = await client.publish("payment:p1", {"type": "payment_success", "text": "оплачено"})

        assert receivers == 2
        channel, payload = raw.publish.await_args.args
        assert channel == "courier_test:payment:p1"
        assert json.loads(payload)["text"] == "оплачено"

    @pytest.mark.asyncio
    async def test_acquire_lock(self, redis_client) -> None:
        client, raw = redis_client
        raw.set.return_value = True

        token = await client.acquire_lock("scheduler:overdue_orders", 300)

        assert token
        args, kwargs = raw.set.await_args
        assert args == ("courier_test:lock:scheduler:overdue_orders", token)
        assert kwargs == {"nx": True, "ex": 300}

    @pytest.mark.asyncio
    async def test_acquire_busy(self, redis_client) -> None:
        client, raw = redis_client
        raw.set.return_value = None

        assert await client.acquire_lock("scheduler:overdue_orders", 300) is None

    @pytest.mark.asyncio
    async def test_release_only_own_token(self, redis_client) -> None:
        client, raw = redis_client
        raw.eval.return_value = 0

        assert await client.release_lock("scheduler:x", "foreign-token") is False
        assert raw.eval.await_args.args[1:] == (1, "courier_test:lock:scheduler:x", "foreign-token")

    @pytest.mark.asyncio
    async def test_health_check_failure(self, redis_client) -> None:
        client, raw = redis_client
        raw.ping.side_effect = ConnectionError("down")

        assert await client.health_check() is False

    @pytest.mark.asyncio
    async def test_publish_failure_raises_external_error(self, redis_client) -> None:
        client, raw = redis_client
        raw.publish.side_effect = RedisConnectionError("down")

        with pytest.raises(ExternalServiceError) as exc_info:
            await client.publish("payment:p1", {"type": "payment_success"})

        assert exc_info.value.details == {"channel": "payment:p1"}

    @pytest.mark.asyncio
    async def test_publish_not_connected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        client = RedisClient()
        monkeypatch.setattr(client, "_client", None)

        with pytest.raises(ExternalServiceError):
            await client.publish("payment:p1", {})
