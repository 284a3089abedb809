# src/core/subscriptions/models.py
"""
Модели подписок и лимитов заказов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.common.constants import (
    UNLIMITED_ORDERS,
    ExpiryReason,
    SubscriptionStatus,
    SubscriptionType,
)
from src.common.utils import ensure_utc, new_id, utc_now


class Subscription(BaseModel):
    """Подписка пользователя."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id, description="UUID подписки")
    user_id: str = Field(..., description="ID пользователя")
    type: SubscriptionType = Field(..., description="Тип подписки")
    status: SubscriptionStatus = Field(SubscriptionStatus.PENDING, description="Статус")
    price: int = Field(0, ge=0, description="Цена в копейках")
    orders_limit: int = Field(UNLIMITED_ORDERS, ge=UNLIMITED_ORDERS, description="Лимит заказов, -1 = безлимит")
    used_orders: int = Field(0, ge=0, description="Использовано заказов")
    start_date: datetime
    end_date: datetime
    canceled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_unlimited(self) -> bool:
        return self.orders_limit == UNLIMITED_ORDERS

    @property
    def remaining_orders(self) -> int:
        if self.is_unlimited:
            return UNLIMITED_ORDERS
        return max(0, self.orders_limit - self.used_orders)

    def is_time_expired(self, now: datetime) -> bool:
        return now > ensure_utc(self.end_date)


class SubscriptionCreateDTO(BaseModel):
    """DTO для создания подписки."""

    user_id: str
    type: SubscriptionType
    price: int = Field(0, ge=0)
    start_date: datetime
    end_date: datetime
    orders_limit: int = Field(UNLIMITED_ORDERS, ge=UNLIMITED_ORDERS)
    used_orders: int = Field(0, ge=0)

    @model_validator(mode="after")
    def check_dates(self) -> "SubscriptionCreateDTO":
        if ensure_utc(self.end_date) <= ensure_utc(self.start_date):
            raise ValueError("end_date должна быть позже start_date")
        if self.orders_limit != UNLIMITED_ORDERS and self.used_orders > self.orders_limit:
            raise ValueError("used_orders не может превышать orders_limit")
        return self


class OrderLimits(BaseModel):
    """Результат проверки лимитов заказов пользователя."""

    can_create_order: bool = False
    remaining_orders: int = 0
    total_limit: int = 0
    used_orders: int = 0
    subscription_type: Optional[str] = None
    subscription_id: Optional[str] = None
    is_expired: bool = False
    expiry_reason: Optional[ExpiryReason] = None

    @classmethod
    def empty(cls) -> "OrderLimits":
        """Нет активной подписки."""
        return cls()

    @classmethod
    def expired(cls, subscription: Subscription, reason: ExpiryReason) -> "OrderLimits":
        return cls(
            subscription_type=subscription.type.value,
            subscription_id=subscription.id,
            total_limit=subscription.orders_limit,
            used_orders=subscription.used_orders,
            is_expired=True,
            expiry_reason=reason,
        )

    @classmethod
    def for_active(cls, subscription: Subscription) -> "OrderLimits":
        return cls(
            can_create_order=True,
            remaining_orders=subscription.remaining_orders,
            total_limit=subscription.orders_limit,
            used_orders=subscription.used_orders,
            subscription_type=subscription.type.value,
            subscription_id=subscription.id,
        )


class UsageStats(BaseModel):
    """Статистика использования заказов по подписке."""

    used: int
    total: int
    remaining: int
    is_unlimited: bool
