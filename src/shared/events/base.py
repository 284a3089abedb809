# src/shared/events/base.py
"""
Базовые классы для доменных событий.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class EventTypes:
    """Routing key событий в шине."""
    # Заказы
    ORDER_CREATED = "order.created"
    ORDER_PAID = "order.paid"
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_OVERDUE = "order.overdue"

    # Платежи
    PAYMENT_STATUS_CHANGED = "payment.status_changed"

    # Подписки
    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_EXPIRED = "subscription.expired"

    # Расписания
    SCHEDULE_ORDER_CREATED = "schedule.order_created"
    SCHEDULE_DEACTIVATED = "schedule.deactivated"

    # Уведомления
    NOTIFICATION_SEND = "notification.send"
    NOTIFICATION_PUSH = "notification.push"


class EventMetadata(BaseModel):
    """Метаданные события для трассировки и дедупликации."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str | None = None
    source_service: str = ""
    version: int = 1


class DomainEvent(BaseModel):
    """
    Базовый класс доменных событий.

    Поля конкретного события лежат на верхнем уровне JSON. Потребитель,
    не знающий конкретного класса, читает их через payload.
    """

    model_config = ConfigDict(extra="allow")

    event_type: str = ""
    metadata: EventMetadata = Field(default_factory=EventMetadata)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "DomainEvent":
        return cls.model_validate_json(data)

    @property
    def event_id(self) -> str:
        return self.metadata.event_id

    @property
    def payload(self) -> dict[str, Any]:
        """Поля события без служебных (event_type, metadata)."""
        return self.model_dump(mode="json", exclude={"event_type", "metadata"})


EventT = TypeVar("EventT", bound=DomainEvent)
