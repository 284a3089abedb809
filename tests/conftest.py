# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("BOT_TOKEN", "test_bot_token")
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")

from src.common.constants import UserRole  # noqa: E402
from src.core.subscriptions.models import Subscription  # noqa: E402
from src.core.users.models import User  # noqa: E402
from tests.fakes import Harness, build_harness, make_subscription  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "комментарий",
        "PROJECT_NAME": "courier_orders_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "json",
        "LOG_TO_FILE": False,
        "BOT_TOKEN": "test_bot_token",
        "API_PORT": 8080,
        "DB_HOST": "db.local",
        "DB_PORT": 5433,
        "DB_NAME": "courier_test",
        "DB_USER": "tester",
        "DB_PASSWORD": "secret",
        "REDIS_HOST": "redis.local",
        "REDIS_NAMESPACE": "courier_test",
        "RABBITMQ_EXCHANGE": "courier.test",
        "PAYMENT_BASE_URL": "https://pay.example.com/",
        "ORDER_PAYMENT_PATH": "/order-payment",
        "SUBSCRIPTION_PAYMENT_PATH": "/subscription-payment",
        "CANCEL_MIN_LEAD_MINUTES": 90,
        "OVERDUE_THRESHOLD_MINUTES": 15,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config), encoding="utf-8")
    return config_file


@pytest.fixture
def temp_lang_dict_file(tmp_path: Path) -> Path:
    """Временный файл локализации."""
    lang_file = tmp_path / "lang_dict.json"
    lang_file.write_text(
        json.dumps({
            "GREETING": {"ru": "Привет, {name}!", "en": "Hello, {name}!"},
            "ONLY_EN": {"en": "English only"},
        }, ensure_ascii=False),
        encoding="utf-8",
    )
    return lang_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ
# =============================================================================

@pytest.fixture
def mock_db() -> MagicMock:
    """Мок DatabaseManager для unit тестов репозиториев."""
    db = MagicMock()
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок RedisClient."""
    redis = AsyncMock()
    redis.publish.return_value = 1
    redis.acquire_lock.return_value = "lock-token"
    redis.release_lock.return_value = True
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок EventBus."""
    return AsyncMock()


# =============================================================================
# ДОМЕННЫЕ ФИКСТУРЫ
# =============================================================================

@pytest.fixture
def harness() -> Harness:
    """Граф сервисов поверх in-memory хранилищ."""
    return build_harness()


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def customer(harness: Harness) -> User:
    return harness.users.add(User(name="Клиент", roles=[UserRole.CUSTOMER], telegram_id=1001))


@pytest.fixture
def courier(harness: Harness) -> User:
    return harness.users.add(User(
        name="Курьер",
        roles=[UserRole.COURIER],
        telegram_id=2001,
        device_token="fcm-courier",
    ))


@pytest.fixture
def other_courier(harness: Harness) -> User:
    return harness.users.add(User(name="Второй курьер", roles=[UserRole.COURIER], telegram_id=2002))


@pytest.fixture
def active_subscription(harness: Harness, customer: User) -> Subscription:
    """Активная подписка клиента: 10 заказов, ни один не использован."""
    return harness.subscriptions_repo.add(make_subscription(customer.id))
