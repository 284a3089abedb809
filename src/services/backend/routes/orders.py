# src/services/backend/routes/orders.py
"""
Заказы: создание, чтение, смена статуса, операции курьера.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from src.core.orders import Order, OrderCreateDTO, OrderService, OrderView
from src.services.backend.dependencies import get_order_service
from src.services.backend.schemas import (
    CancelOrderRequest,
    CourierActionRequest,
    OrderStatusRequest,
    ReassignRequest,
)
from src.shared.models.common import ErrorResponse

router = APIRouter(prefix="/orders", tags=["Orders"])

OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]


@router.post("", response_model=OrderView, status_code=status.HTTP_201_CREATED, summary="Создать заказ")
async def create_order(dto: OrderCreateDTO, service: OrderServiceDep) -> OrderView:
    """
    Создать заказ.

    При оплате подпиской заказ сразу оплачен, иначе в ответе
    ожидающий платёж со ссылкой на оплату.
    """
    return await service.create(dto)


@router.get("/available", response_model=list[Order], summary="Заказы, доступные курьерам")
async def list_available(service: OrderServiceDep) -> list[Order]:
    return await service.list_available()


@router.get("/customer/{customer_id}", response_model=list[Order], summary="Заказы клиента")
async def list_for_customer(customer_id: str, service: OrderServiceDep) -> list[Order]:
    return await service.list_for_customer(customer_id)


@router.get("/courier/{courier_id}", response_model=list[Order], summary="Заказы курьера")
async def list_for_courier(courier_id: str, service: OrderServiceDep) -> list[Order]:
    return await service.list_for_courier(courier_id)


@router.get(
    "/{order_id}",
    response_model=OrderView,
    responses={404: {"model": ErrorResponse}},
    summary="Получить заказ",
)
async def get_order(order_id: str, service: OrderServiceDep) -> OrderView:
    """Заказ с платежами и признаком просрочки."""
    return await service.get(order_id)


@router.patch(
    "/{order_id}/status",
    response_model=Order,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Сменить статус",
)
async def update_status(order_id: str, request: OrderStatusRequest, service: OrderServiceDep) -> Order:
    return await service.transition(order_id, request.status, request.courier_id)


@router.delete(
    "/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Удалить заказ",
)
async def delete_order(order_id: str, service: OrderServiceDep) -> None:
    await service.remove(order_id)


@router.post("/{order_id}/take", response_model=Order, summary="Взять заказ")
async def take_order(order_id: str, request: CourierActionRequest, service: OrderServiceDep) -> Order:
    return await service.take(order_id, request.courier_id)


@router.post("/{order_id}/start", response_model=Order, summary="Начать выполнение")
async def start_order(order_id: str, request: CourierActionRequest, service: OrderServiceDep) -> Order:
    return await service.start(order_id, request.courier_id)


@router.post("/{order_id}/complete", response_model=Order, summary="Завершить заказ")
async def complete_order(order_id: str, request: CourierActionRequest, service: OrderServiceDep) -> Order:
    return await service.complete(order_id, request.courier_id)


@router.post("/{order_id}/cancel", response_model=Order, summary="Отменить заказ")
async def cancel_order(order_id: str, request: CancelOrderRequest, service: OrderServiceDep) -> Order:
    return await service.cancel(order_id, request.courier_id)


@router.post("/{order_id}/reassign", response_model=Order, summary="Переназначить курьера")
async def reassign_order(order_id: str, request: ReassignRequest, service: OrderServiceDep) -> Order:
    return await service.reassign(order_id, request.courier_id)
