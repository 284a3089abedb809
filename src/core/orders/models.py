# src/core/orders/models.py
"""
Модели данных заказов.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import OrderStatus, PaymentMethod
from src.common.utils import ensure_utc, new_id, utc_now
from src.core.payments.models import Payment


class AddressDetails(BaseModel):
    """Уточнения адреса (подъезд, этаж, квартира)."""

    building: Optional[str] = None
    building_block: Optional[str] = None
    entrance: Optional[str] = None
    floor: Optional[str] = None
    apartment: Optional[str] = None
    domophone: Optional[str] = None


class Order(BaseModel):
    """Модель заказа."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id, description="UUID заказа")
    customer_id: str = Field(..., description="ID клиента")
    courier_id: Optional[str] = Field(None, description="ID курьера")
    schedule_id: Optional[str] = Field(None, description="ID расписания, если заказ регулярный")

    address: str = Field(..., description="Адрес")
    address_details: Optional[AddressDetails] = Field(None, description="Уточнения адреса")
    description: Optional[str] = None
    notes: Optional[str] = None

    price: int = Field(0, ge=0, description="Цена в копейках")
    number_packages: int = Field(1, ge=1, description="Количество пакетов")

    status: OrderStatus = Field(OrderStatus.NEW, description="Статус заказа")
    payment_url: Optional[str] = Field(None, description="Ссылка на оплату")

    scheduled_at: Optional[datetime] = Field(None, description="Плановое время выполнения")
    assigned_at: Optional[datetime] = Field(None, description="Время назначения курьера")
    overdue_minutes: Optional[int] = Field(None, description="Просрочка, зафиксированная при назначении")
    overdue_notified_at: Optional[datetime] = Field(None, description="Когда курьеру ушло уведомление о просрочке")

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DONE, OrderStatus.CANCELED)

    def minutes_overdue(self, now: datetime) -> int:
        """Сколько минут прошло после scheduled_at (0, если ещё не наступило)."""
        scheduled_at = ensure_utc(self.scheduled_at)
        if scheduled_at is None or now <= scheduled_at:
            return 0
        return math.floor((now - scheduled_at).total_seconds() / 60)


class OrderCreateDTO(BaseModel):
    """DTO для создания заказа."""

    customer_id: str = Field(..., description="ID клиента")
    address: str = Field(..., min_length=1, description="Адрес")
    price: int = Field(..., ge=0, description="Цена в копейках")
    payment_method: PaymentMethod = Field(PaymentMethod.ONLINE, description="Способ оплаты")
    scheduled_at: Optional[datetime] = Field(None, description="Плановое время, по умолчанию через час")
    address_details: Optional[AddressDetails] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    number_packages: int = Field(1, ge=1)


class OrderView(BaseModel):
    """Заказ вместе с платежами и признаком просрочки."""

    order: Order
    payments: list[Payment] = Field(default_factory=list, description="Платежи заказа")
    is_overdue: bool = False
    overdue_minutes: int = 0
