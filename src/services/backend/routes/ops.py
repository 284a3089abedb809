# src/services/backend/routes/ops.py
"""
Ручной запуск периодических задач (эксплуатация и тесты).
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from src.core.scheduling import OverdueMonitor, ScheduledOrderEngine, ScheduleRunReport
from src.core.subscriptions import SubscriptionService
from src.services.backend.dependencies import get_engine, get_overdue_monitor, get_subscription_service
from src.services.backend.schemas import ExpirySweepResponse, OverdueCheckResponse

router = APIRouter(prefix="/ops", tags=["Ops"])


@router.post("/scheduled-orders/run", response_model=ScheduleRunReport, summary="Проход по расписаниям")
async def run_scheduled_orders(
    engine: Annotated[ScheduledOrderEngine, Depends(get_engine)],
) -> ScheduleRunReport:
    """Если проход уже идёт, возвращается отчёт с busy=true."""
    return await engine.process_due_schedules()


@router.post("/overdue/check", response_model=OverdueCheckResponse, summary="Проверка просрочек")
async def check_overdue(
    monitor: Annotated[OverdueMonitor, Depends(get_overdue_monitor)],
) -> OverdueCheckResponse:
    return OverdueCheckResponse(notified=await monitor.check_overdue())


@router.post("/subscriptions/expire", response_model=ExpirySweepResponse, summary="Завершение подписок по сроку")
async def expire_subscriptions(
    service: Annotated[SubscriptionService, Depends(get_subscription_service)],
) -> ExpirySweepResponse:
    expired = await service.expire_ended()
    return ExpirySweepResponse(expired=len(expired), subscription_ids=[s.id for s in expired])
