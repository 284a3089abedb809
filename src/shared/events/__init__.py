# src/shared/events/__init__.py
"""
Схемы событий для RabbitMQ.

Routing key события совпадает с его event_type.
"""

from src.shared.events.base import DomainEvent, EventMetadata, EventTypes
from src.shared.events.order_events import (
    OrderCreated,
    OrderPaid,
    OrderStatusChanged,
    OrderOverdue,
)
from src.shared.events.payment_events import PaymentStatusChanged
from src.shared.events.subscription_events import (
    SubscriptionActivated,
    SubscriptionExpired,
    ScheduledOrderCreated,
    ScheduleDeactivated,
)
from src.shared.events.notification_events import (
    TelegramMessageRequested,
    PushRequested,
)

__all__ = [
    "DomainEvent",
    "EventMetadata",
    "EventTypes",
    "OrderCreated",
    "OrderPaid",
    "OrderStatusChanged",
    "OrderOverdue",
    "PaymentStatusChanged",
    "SubscriptionActivated",
    "SubscriptionExpired",
    "ScheduledOrderCreated",
    "ScheduleDeactivated",
    "TelegramMessageRequested",
    "PushRequested",
]
