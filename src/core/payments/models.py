# src/core/payments/models.py
"""
Модели платежей.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.common.constants import PaymentMethod, PaymentStatus, PaymentSubject
from src.common.utils import new_id, utc_now


class Payment(BaseModel):
    """
    Платёж заказа или подписки.
    Задан ровно один из order_id / subscription_id.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id, description="UUID платежа")
    order_id: Optional[str] = Field(None, description="ID заказа")
    subscription_id: Optional[str] = Field(None, description="ID подписки")
    amount: int = Field(0, ge=0, description="Сумма в копейках")
    method: PaymentMethod = Field(PaymentMethod.ONLINE, description="Способ оплаты")
    status: PaymentStatus = Field(PaymentStatus.PENDING, description="Статус")
    provider_id: Optional[str] = Field(None, description="ID платежа у провайдера")
    payment_url: Optional[str] = Field(None, description="Ссылка на оплату")
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_subject(self) -> "Payment":
        if (self.order_id is None) == (self.subscription_id is None):
            raise ValueError("Платёж должен относиться либо к заказу, либо к подписке")
        return self

    @property
    def subject(self) -> PaymentSubject:
        return PaymentSubject.ORDER if self.order_id else PaymentSubject.SUBSCRIPTION

    @property
    def subject_id(self) -> str:
        return self.order_id or self.subscription_id  # type: ignore[return-value]


class PaymentStatusChange(BaseModel):
    """Результат setStatus: что было, что стало и применилось ли изменение."""

    payment: Payment
    previous_status: PaymentStatus
    applied: bool = Field(..., description="False для повтора или отклонённого отката")

    @property
    def became_paid(self) -> bool:
        return self.applied and self.payment.status == PaymentStatus.PAID
