# src/shared/events/order_events.py
"""
События домена заказов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from src.shared.events.base import DomainEvent


class OrderCreated(DomainEvent):
    """Событие: заказ создан."""

    event_type: Literal["order.created"] = "order.created"

    order_id: str
    customer_id: str
    status: str
    price: int
    scheduled_at: datetime | None = None
    schedule_id: str | None = None


class OrderPaid(DomainEvent):
    """Событие: заказ оплачен, его нужно показать курьерам."""

    event_type: Literal["order.paid"] = "order.paid"

    order_id: str
    customer_id: str
    address: str
    scheduled_at: datetime | None = None


class OrderStatusChanged(DomainEvent):
    """Событие: статус заказа изменился."""

    event_type: Literal["order.status_changed"] = "order.status_changed"

    order_id: str
    customer_id: str
    courier_id: str | None = None
    previous_status: str
    status: str


class OrderOverdue(DomainEvent):
    """Событие: курьер опаздывает с выполнением заказа."""

    event_type: Literal["order.overdue"] = "order.overdue"

    order_id: str
    courier_id: str
    overdue_minutes: int
