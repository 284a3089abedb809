# src/core/webhooks/models.py
"""
Модели входящих вебхуков платёжного провайдера.

Метаданные платежа разбираются как размеченное объединение:
ключ orderId означает платёж заказа, subscriptionId означает платёж подписки.
Всё остальное считается нераспознанным.
"""

from __future__ import annotations

from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)

from src.common.constants import PaymentStatus, PaymentSubject


# Тип события провайдера -> внутренний статус платежа
EVENT_STATUS_MAP: dict[str, PaymentStatus] = {
    "payment.succeeded": PaymentStatus.PAID,
    "payment.waiting_for_capture": PaymentStatus.WAITING_FOR_CAPTURE,
    "payment.canceled": PaymentStatus.CANCELED,
    "refund.succeeded": PaymentStatus.REFUNDED,
}


class OrderPaymentMetadata(BaseModel):
    """Метаданные платежа заказа."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., alias="orderId", min_length=1)
    payment_id: str = Field(..., alias="paymentId", min_length=1)

    @property
    def subject(self) -> PaymentSubject:
        return PaymentSubject.ORDER

    @property
    def subject_id(self) -> str:
        return self.order_id


class SubscriptionPaymentMetadata(BaseModel):
    """Метаданные платежа подписки."""

    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str = Field(..., alias="subscriptionId", min_length=1)
    payment_id: str = Field(..., alias="paymentId", min_length=1)

    @property
    def subject(self) -> PaymentSubject:
        return PaymentSubject.SUBSCRIPTION

    @property
    def subject_id(self) -> str:
        return self.subscription_id


def _metadata_kind(value: Any) -> str | None:
    if not isinstance(value, dict):
        return None
    has_order = "orderId" in value or "order_id" in value
    has_subscription = "subscriptionId" in value or "subscription_id" in value
    if has_order == has_subscription:
        return None
    return "order" if has_order else "subscription"


PaymentMetadata = Annotated[
    Union[
        Annotated[OrderPaymentMetadata, Tag("order")],
        Annotated[SubscriptionPaymentMetadata, Tag("subscription")],
    ],
    Discriminator(_metadata_kind),
]

_metadata_adapter: TypeAdapter[PaymentMetadata] = TypeAdapter(PaymentMetadata)


def classify_metadata(
    raw: dict[str, Any] | None,
) -> OrderPaymentMetadata | SubscriptionPaymentMetadata | None:
    """None, если метаданные не подходят ни под заказ, ни под подписку."""
    if not raw:
        return None
    try:
        return _metadata_adapter.validate_python(raw)
    except ValidationError:
        return None


class WebhookObject(BaseModel):
    """Объект события: платёж или возврат."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = Field(None, description="ID платежа (или возврата) у провайдера")
    status: Optional[str] = Field(None, description="Статус у провайдера")
    payment_id: Optional[str] = Field(None, description="ID платежа у провайдера в событиях возврата")
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    """Тело вебхука. Тип события приходит в поле event или type."""

    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    type: Optional[str] = None
    object: WebhookObject

    @property
    def event_type(self) -> str:
        return self.event or self.type or ""

    @property
    def provider_payment_id(self) -> str | None:
        """ID платежа у провайдера: у возврата он в payment_id, у платежа в id."""
        return self.object.payment_id or self.object.id


class WebhookResult(BaseModel):
    """Ответ на вебхук. Провайдер получает 200 во всех распознаваемых случаях."""

    message: str
    type: Optional[str] = Field(None, description="order | subscription")
    payment_id: Optional[str] = None
    status: Optional[PaymentStatus] = None
    success: bool = True
