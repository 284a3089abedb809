# src/services/backend/routes/schedules.py
"""
Расписания регулярных заказов.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from src.core.scheduling import ScheduleCreateDTO, ScheduleDefinition, ScheduleService, ScheduleUpdateDTO
from src.services.backend.dependencies import get_schedule_service
from src.shared.models.common import ErrorResponse

router = APIRouter(prefix="/schedules", tags=["Schedules"])

ScheduleServiceDep = Annotated[ScheduleService, Depends(get_schedule_service)]


@router.post(
    "",
    response_model=ScheduleDefinition,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Создать расписание",
)
async def create_schedule(dto: ScheduleCreateDTO, service: ScheduleServiceDep) -> ScheduleDefinition:
    return await service.create(dto)


@router.get("/customer/{customer_id}", response_model=list[ScheduleDefinition], summary="Расписания клиента")
async def list_for_customer(customer_id: str, service: ScheduleServiceDep) -> list[ScheduleDefinition]:
    return await service.list_for_customer(customer_id)


@router.get(
    "/{schedule_id}",
    response_model=ScheduleDefinition,
    responses={404: {"model": ErrorResponse}},
    summary="Получить расписание",
)
async def get_schedule(schedule_id: str, service: ScheduleServiceDep) -> ScheduleDefinition:
    return await service.get(schedule_id)


@router.patch(
    "/{schedule_id}",
    response_model=ScheduleDefinition,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Изменить расписание",
)
async def update_schedule(
    schedule_id: str,
    dto: ScheduleUpdateDTO,
    service: ScheduleServiceDep,
) -> ScheduleDefinition:
    return await service.update(schedule_id, dto)


@router.post("/{schedule_id}/activate", response_model=ScheduleDefinition, summary="Включить расписание")
async def activate_schedule(schedule_id: str, service: ScheduleServiceDep) -> ScheduleDefinition:
    return await service.activate(schedule_id)


@router.post("/{schedule_id}/deactivate", response_model=ScheduleDefinition, summary="Выключить расписание")
async def deactivate_schedule(schedule_id: str, service: ScheduleServiceDep) -> ScheduleDefinition:
    return await service.deactivate(schedule_id)


@router.delete(
    "/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Удалить расписание",
)
async def delete_schedule(schedule_id: str, service: ScheduleServiceDep) -> None:
    await service.delete(schedule_id)
