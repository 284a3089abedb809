# src/config/loader.py
"""
Загрузчик конфигурации проекта.

config/config.json хранит плоский словарь ключей; каждая секция Settings
забирает из него свои поля по именам. Адреса инфраструктуры и секреты
из ENV_OVERRIDES можно переопределить переменными окружения (и .env).
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SectionT = TypeVar("SectionT", bound=BaseModel)

# Ключи, для которых переменная окружения важнее config.json
ENV_OVERRIDES = frozenset({
    "ENVIRONMENT", "COMPONENT_MODE", "BOT_TOKEN", "API_HOST", "API_PORT",
    "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD",
    "REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD",
    "RABBITMQ_HOST", "RABBITMQ_PORT", "RABBITMQ_USER", "RABBITMQ_PASSWORD",
    "PAYMENT_BASE_URL", "SCHEDULED_ORDERS_INTERVAL",
})


def get_project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def get_config_path() -> Path:
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """
    Читает config.json. Ключи вида _comment_* служат подписями
    к группам и в настройки не попадают.
    """
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    data = json.loads(config_path.read_text(encoding="utf-8"))
    return {key: value for key, value in data.items() if not key.startswith("_comment_")}


# --- секции ---

class SystemSettings(BaseModel):
    PROJECT_NAME: str = "courier_orders"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    # api | scheduler | notifications | all
    COMPONENT_MODE: str = "all"


class LoggingSettings(BaseModel):
    LOG_LEVEL: str = "DEBUG"
    # colored | json
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024


class TelegramSettings(BaseModel):
    """Бот, через который курьеры получают уведомления."""
    BOT_TOKEN: str = ""

    @field_validator("BOT_TOKEN", mode="before")
    @classmethod
    def token_from_env(cls, value: str) -> str:
        return value or os.getenv("BOT_TOKEN", "")


class ApiSettings(BaseModel):
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000


class DatabaseSettings(BaseModel):
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "courier_orders"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"


class RedisSettings(BaseModel):
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "courier"
    REDIS_MAX_CONNECTIONS: int = 50

    @property
    def url(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RabbitMQSettings(BaseModel):
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "courier.events"
    RABBITMQ_PREFETCH_COUNT: int = 10

    @property
    def url(self) -> str:
        credentials = f"{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
        return f"amqp://{credentials}@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"


class PaymentSettings(BaseModel):
    """Адреса страниц оплаты, которые получает клиент."""
    PAYMENT_BASE_URL: str = "http://localhost:8000"
    ORDER_PAYMENT_PATH: str = "/order-payment"
    SUBSCRIPTION_PAYMENT_PATH: str = "/subscription-payment"

    def _url(self, path: str, payment_id: str) -> str:
        return f"{self.PAYMENT_BASE_URL.rstrip('/')}{path}/{payment_id}"

    def order_payment_url(self, payment_id: str) -> str:
        return self._url(self.ORDER_PAYMENT_PATH, payment_id)

    def subscription_payment_url(self, payment_id: str) -> str:
        return self._url(self.SUBSCRIPTION_PAYMENT_PATH, payment_id)


class OrderSettings(BaseModel):
    # scheduled_at по умолчанию: сейчас + DEFAULT_SCHEDULE_OFFSET_MINUTES
    DEFAULT_SCHEDULE_OFFSET_MINUTES: int = 60
    CANCEL_MIN_LEAD_MINUTES: int = 120
    # Цена заказа из расписания; платёж по нему нулевой, его покрывает подписка
    SCHEDULED_ORDER_PRICE: int = 14900
    DEFAULT_ORDER_HOUR_UTC: int = 10


class SchedulerSettings(BaseModel):
    """Интервалы периодических задач, секунды."""
    SCHEDULED_ORDERS_INTERVAL: int = 1800
    OVERDUE_CHECK_INTERVAL: int = 300
    OVERDUE_THRESHOLD_MINUTES: int = 10
    SUBSCRIPTION_EXPIRY_INTERVAL: int = 3600
    SCHEDULER_LOCK_TTL: int = 1800


def build_section(model: type[SectionT], data: dict[str, Any]) -> SectionT:
    """
    Собирает секцию из плоского словаря: значение из окружения
    (только для ENV_OVERRIDES), иначе из config.json, иначе умолчание модели.
    Строки из окружения приводит к типам полей pydantic.
    """
    values: dict[str, Any] = {}
    for name in model.model_fields:
        env_value = os.getenv(name) if name in ENV_OVERRIDES else None
        if env_value is not None:
            values[name] = env_value
        elif name in data:
            values[name] = data[name]
    return model(**values)


class Settings(BaseSettings):
    """Все секции конфигурации приложения."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    payments: PaymentSettings = Field(default_factory=PaymentSettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        return cls(
            system=build_section(SystemSettings, data),
            logging=build_section(LoggingSettings, data),
            telegram=build_section(TelegramSettings, data),
            api=build_section(ApiSettings, data),
            database=build_section(DatabaseSettings, data),
            redis=build_section(RedisSettings, data),
            rabbitmq=build_section(RabbitMQSettings, data),
            payments=build_section(PaymentSettings, data),
            orders=build_section(OrderSettings, data),
            scheduler=build_section(SchedulerSettings, data),
        )

    @classmethod
    def from_config_json(cls) -> Settings:
        return cls.from_dict(load_config_json())


@lru_cache()
def get_settings() -> Settings:
    """Настройки процесса; .env из корня проекта подгружается до чтения конфига."""
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


settings = get_settings()
