# src/services/backend/dependencies.py
"""
Dependency Injection для backend-сервиса.
Сборка доменных сервисов поверх инфраструктуры процесса.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.common.background import get_background_tasks
from src.core.notifications import NotificationService, PaymentStatusChannel, PushNotifier
from src.core.orders import OrderService
from src.core.payments import PaymentLedger
from src.core.scheduling import OverdueMonitor, ScheduledOrderEngine, ScheduleService
from src.core.subscriptions import SubscriptionLimitsTracker, SubscriptionService
from src.core.users.repository import UserRepository
from src.core.webhooks import WebhookReconciler

if TYPE_CHECKING:
    from src.infra.database import DatabaseManager
    from src.infra.event_bus import EventBus
    from src.infra.redis_client import RedisClient


@dataclass
class Services:
    """Доменные сервисы одного процесса."""

    ledger: PaymentLedger
    limits: SubscriptionLimitsTracker
    orders: OrderService
    subscriptions: SubscriptionService
    schedules: ScheduleService
    engine: ScheduledOrderEngine
    overdue: OverdueMonitor
    reconciler: WebhookReconciler
    notifier: NotificationService


def build_services(
    db: "DatabaseManager",
    redis: "RedisClient",
    event_bus: "EventBus",
) -> Services:
    """Собирает граф сервисов. Используется API и планировщиком."""
    from src.config import settings

    background = get_background_tasks()
    users = UserRepository(db)
    notifier = NotificationService(event_bus, users, PushNotifier(event_bus, users))

    ledger = PaymentLedger(db, event_bus=event_bus, payment_settings=settings.payments)
    limits = SubscriptionLimitsTracker(db, event_bus=event_bus)
    orders = OrderService(
        db,
        ledger,
        limits,
        notifier=notifier,
        event_bus=event_bus,
        users=users,
        order_settings=settings.orders,
        background=background,
    )
    schedules = ScheduleService(db, limits)
    subscriptions = SubscriptionService(
        db, ledger, limits, users=users, event_bus=event_bus, schedules=schedules.repository,
    )
    engine = ScheduledOrderEngine(
        db,
        orders,
        limits,
        repository=schedules.repository,
        notifier=notifier,
        event_bus=event_bus,
        order_settings=settings.orders,
        background=background,
    )
    overdue = OverdueMonitor(
        orders.repository,
        notifier=notifier,
        event_bus=event_bus,
        threshold_minutes=settings.scheduler.OVERDUE_THRESHOLD_MINUTES,
    )
    reconciler = WebhookReconciler(
        ledger,
        orders,
        subscriptions,
        channel=PaymentStatusChannel(redis),
        background=background,
    )

    return Services(
        ledger=ledger,
        limits=limits,
        orders=orders,
        subscriptions=subscriptions,
        schedules=schedules,
        engine=engine,
        overdue=overdue,
        reconciler=reconciler,
        notifier=notifier,
    )


# Синглтон сервисов процесса
_services: Services | None = None


async def init_dependencies(
    db: "DatabaseManager",
    redis: "RedisClient",
    event_bus: "EventBus",
) -> Services:
    """Инициализировать зависимости при старте приложения."""
    global _services
    _services = build_services(db, redis, event_bus)
    return _services


def set_services(services: Services | None) -> None:
    """Подмена графа сервисов (тесты)."""
    global _services
    _services = services


def get_services() -> Services:
    if _services is None:
        raise RuntimeError("Сервисы не инициализированы. Вызовите init_dependencies()")
    return _services


def get_order_service() -> OrderService:
    return get_services().orders


def get_subscription_service() -> SubscriptionService:
    return get_services().subscriptions


def get_schedule_service() -> ScheduleService:
    return get_services().schedules


def get_ledger() -> PaymentLedger:
    return get_services().ledger


def get_reconciler() -> WebhookReconciler:
    return get_services().reconciler


def get_engine() -> ScheduledOrderEngine:
    return get_services().engine


def get_overdue_monitor() -> OverdueMonitor:
    return get_services().overdue


async def cleanup_dependencies() -> None:
    """Дожидается фоновых уведомлений и сбрасывает сервисы."""
    global _services
    await get_background_tasks().drain()
    _services = None
