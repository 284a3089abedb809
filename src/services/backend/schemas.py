# src/services/backend/schemas.py
"""
Модели запросов и ответов HTTP API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from src.common.constants import OrderStatus, SubscriptionStatus


class OrderStatusRequest(BaseModel):
    """Смена статуса заказа."""
    status: OrderStatus
    courier_id: Optional[str] = Field(None, description="Обязателен для assigned")


class CourierActionRequest(BaseModel):
    """Действие курьера над заказом."""
    courier_id: str


class CancelOrderRequest(BaseModel):
    """Отмена заказа клиентом (без courier_id) или курьером."""
    courier_id: Optional[str] = None


class ReassignRequest(BaseModel):
    """Передача заказа другому курьеру."""
    courier_id: str


class SubscriptionStatusRequest(BaseModel):
    """Ручная смена статуса подписки."""
    status: SubscriptionStatus


class MessageResponse(BaseModel):
    message: str


class OverdueCheckResponse(BaseModel):
    notified: int


class ExpirySweepResponse(BaseModel):
    expired: int
    subscription_ids: list[str] = Field(default_factory=list)
