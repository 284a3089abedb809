# src/core/scheduling/engine.py
"""
Движок регулярных заказов.

Один проход = одна проверка всех активных расписаний. Каждое расписание
обрабатывается в своей транзакции: блокировка расписания (SKIP LOCKED),
проверка подписки, списание слота, создание заказа и запись
last_created_at фиксируются вместе.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from src.common.background import BackgroundTasks, get_background_tasks
from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, log_warning
from src.common.utils import utc_now
from src.core.orders.models import Order
from src.core.scheduling import recurrence
from src.core.scheduling.models import ScheduleDefinition, ScheduleRunReport
from src.core.scheduling.repository import ScheduleRepository
from src.shared.events.subscription_events import ScheduleDeactivated, ScheduledOrderCreated

if TYPE_CHECKING:
    from src.config.loader import OrderSettings
    from src.core.notifications.service import NotificationService
    from src.core.orders.service import OrderService
    from src.core.subscriptions.limits import SubscriptionLimitsTracker
    from src.infra.database import DatabaseManager
    from src.infra.event_bus import EventBus


class _Outcome(str, Enum):
    CREATED = "created"
    NOT_DUE = "not_due"
    SKIPPED = "skipped"
    DEACTIVATED = "deactivated"


class ScheduledOrderEngine:
    """
    Создание заказов по расписаниям.

    Внутри процесса проходы не пересекаются: если предыдущий ещё идёт,
    новый сразу возвращает отчёт с busy=True. Между процессами проход
    защищает лок в Redis (см. src/worker/scheduler.py).
    """

    def __init__(
        self,
        db: "DatabaseManager",
        orders: "OrderService",
        limits: "SubscriptionLimitsTracker",
        repository: ScheduleRepository | None = None,
        notifier: "NotificationService | None" = None,
        event_bus: "EventBus | None" = None,
        order_settings: "OrderSettings | None" = None,
        background: BackgroundTasks | None = None,
    ) -> None:
        if order_settings is None:
            from src.config import settings
            order_settings = settings.orders

        self._db = db
        self._orders = orders
        self._limits = limits
        self._notifier = notifier
        self._event_bus = event_bus
        self._settings = order_settings
        self._background = background or get_background_tasks()
        self.repository = repository or ScheduleRepository(db)
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    async def process_due_schedules(self, now: Optional[datetime] = None) -> ScheduleRunReport:
        """Один проход по всем активным расписаниям."""
        if self._run_lock.locked():
            await log_warning("Проход по расписаниям уже выполняется, пропускаем")
            return ScheduleRunReport(busy=True)

        async with self._run_lock:
            return await self._run(now or utc_now())

    async def _run(self, now: datetime) -> ScheduleRunReport:
        report = ScheduleRunReport()
        schedule_ids = await self.repository.list_active_ids()

        for schedule_id in schedule_ids:
            report.checked += 1
            try:
                outcome, order = await self._process_one(schedule_id, now)
            except Exception as e:
                report.failed += 1
                await log_error(
                    f"Ошибка при создании заказа из расписания {schedule_id}: {e}",
                    extra={"schedule_id": schedule_id},
                    exc_info=True,
                )
                continue

            if outcome == _Outcome.CREATED and order is not None:
                report.created += 1
                report.order_ids.append(order.id)
            elif outcome == _Outcome.DEACTIVATED:
                report.deactivated += 1
            elif outcome == _Outcome.NOT_DUE:
                report.not_due += 1

        await log_info(
            f"Проход по расписаниям: проверено {report.checked}, создано {report.created}, "
            f"выключено {report.deactivated}, ошибок {report.failed}",
            type_msg=TypeMsg.INFO,
        )
        return report

    async def _process_one(self, schedule_id: str, now: datetime) -> tuple[_Outcome, Order | None]:
        deactivation_reason: str | None = None
        order: Order | None = None

        async with self._db.transaction() as conn:
            schedule = await self.repository.lock_active(schedule_id, conn)
            if schedule is None:
                return _Outcome.SKIPPED, None

            if not recurrence.is_in_window(schedule, now):
                return _Outcome.NOT_DUE, None

            limits = await self._limits.check_order_limits_locked(schedule.customer_id, conn=conn)
            if not limits.can_create_order:
                if limits.subscription_id is None or limits.is_expired:
                    deactivation_reason = "subscription_inactive"
                else:
                    deactivation_reason = "limits_exhausted"
                await self.repository.set_active(schedule.id, False, conn=conn)
            elif not recurrence.is_due(schedule, now):
                return _Outcome.NOT_DUE, None
            else:
                reserved = await self._limits.reserve_order_slot(schedule.customer_id, conn=conn)
                if not reserved.can_create_order:
                    deactivation_reason = "limits_exhausted"
                    await self.repository.set_active(schedule.id, False, conn=conn)
                else:
                    order = self._build_order(schedule, now)
                    await self._orders.insert_prepaid(order, conn=conn)
                    await self.repository.set_last_created_at(schedule.id, now, conn=conn)

        if deactivation_reason is not None:
            await self._on_deactivated(schedule, deactivation_reason)
            return _Outcome.DEACTIVATED, None

        await self._on_created(schedule, order)
        return _Outcome.CREATED, order

    def _build_order(self, schedule: ScheduleDefinition, now: datetime) -> Order:
        return Order(
            customer_id=schedule.customer_id,
            schedule_id=schedule.id,
            address=schedule.address,
            address_details=schedule.address_details,
            description=schedule.description,
            notes=schedule.notes,
            price=self._settings.SCHEDULED_ORDER_PRICE,
            number_packages=1,
            scheduled_at=recurrence.next_order_time(schedule, now, self._settings.DEFAULT_ORDER_HOUR_UTC),
        )

    async def _on_created(self, schedule: ScheduleDefinition, order: Order) -> None:
        await log_info(
            f"Создан заказ {order.id} из расписания {schedule.id} для пользователя {schedule.customer_id}",
            type_msg=TypeMsg.INFO,
            extra={"schedule_id": schedule.id, "order_id": order.id},
        )
        if self._event_bus is not None:
            await self._event_bus.publish(ScheduledOrderCreated(
                schedule_id=schedule.id,
                order_id=order.id,
                customer_id=schedule.customer_id,
                scheduled_at=order.scheduled_at,
            ))
        await self._orders.announce_paid(order)
        if self._notifier is not None:
            self._background.spawn(
                self._notifier.notify_scheduled_order_created(order),
                name=f"notify-scheduled-{order.id}",
            )

    async def _on_deactivated(self, schedule: ScheduleDefinition, reason: str) -> None:
        await log_warning(
            f"Расписание {schedule.id} пользователя {schedule.customer_id} выключено: {reason}",
            extra={"schedule_id": schedule.id},
        )
        if self._event_bus is not None:
            await self._event_bus.publish(ScheduleDeactivated(
                schedule_id=schedule.id,
                customer_id=schedule.customer_id,
                reason=reason,
            ))
