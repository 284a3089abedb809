# src/shared/events/subscription_events.py
"""
События домена подписок и регулярных заказов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from src.shared.events.base import DomainEvent


class SubscriptionActivated(DomainEvent):
    """Событие: подписка активирована оплатой."""

    event_type: Literal["subscription.activated"] = "subscription.activated"

    subscription_id: str
    user_id: str
    payment_id: str | None = None


class SubscriptionExpired(DomainEvent):
    """Событие: подписка истекла (по времени или по лимиту заказов)."""

    event_type: Literal["subscription.expired"] = "subscription.expired"

    subscription_id: str
    user_id: str
    reason: str


class ScheduledOrderCreated(DomainEvent):
    """Событие: по расписанию создан заказ."""

    event_type: Literal["schedule.order_created"] = "schedule.order_created"

    schedule_id: str
    order_id: str
    customer_id: str
    scheduled_at: datetime


class ScheduleDeactivated(DomainEvent):
    """Событие: расписание выключено движком."""

    event_type: Literal["schedule.deactivated"] = "schedule.deactivated"

    schedule_id: str
    customer_id: str
    reason: str
