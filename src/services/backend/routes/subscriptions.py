# src/services/backend/routes/subscriptions.py
"""
Подписки: создание, оплата, статус, лимиты.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

from src.core.payments import Payment
from src.core.subscriptions import Subscription, SubscriptionCreateDTO, SubscriptionService, UsageStats
from src.services.backend.dependencies import get_subscription_service
from src.services.backend.schemas import SubscriptionStatusRequest
from src.shared.models.common import ErrorResponse

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])

SubscriptionServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]


@router.post(
    "",
    response_model=Subscription,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Создать подписку",
)
async def create_subscription(dto: SubscriptionCreateDTO, service: SubscriptionServiceDep) -> Subscription:
    return await service.create(dto)


@router.get("/user/{user_id}", response_model=list[Subscription], summary="Подписки пользователя")
async def list_for_user(user_id: str, service: SubscriptionServiceDep) -> list[Subscription]:
    return await service.list_for_user(user_id)


@router.get("/user/{user_id}/active", response_model=Optional[Subscription], summary="Активная подписка")
async def get_active(user_id: str, service: SubscriptionServiceDep) -> Optional[Subscription]:
    return await service.get_active(user_id)


@router.get("/user/{user_id}/usage", response_model=UsageStats, summary="Использование лимита")
async def get_usage(user_id: str, service: SubscriptionServiceDep) -> UsageStats:
    return await service.get_usage_stats(user_id)


@router.get(
    "/{subscription_id}",
    response_model=Subscription,
    responses={404: {"model": ErrorResponse}},
    summary="Получить подписку",
)
async def get_subscription(subscription_id: str, service: SubscriptionServiceDep) -> Subscription:
    return await service.get(subscription_id)


@router.post(
    "/{subscription_id}/payment",
    response_model=Payment,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Открыть платёж за подписку",
)
async def open_payment(subscription_id: str, service: SubscriptionServiceDep) -> Payment:
    return await service.open_payment(subscription_id)


@router.patch(
    "/{subscription_id}/status",
    response_model=Subscription,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Сменить статус подписки",
)
async def update_status(
    subscription_id: str,
    request: SubscriptionStatusRequest,
    service: SubscriptionServiceDep,
) -> Subscription:
    return await service.update_status(subscription_id, request.status)
