# src/core/scheduling/service.py
"""
Сервис расписаний: управление правилами регулярных заказов.
Сами заказы создаёт ScheduledOrderEngine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.common.constants import ScheduleFrequency, TypeMsg
from src.common.exceptions import BadRequestError, NotFoundError
from src.common.logger import log_info
from src.common.utils import ensure_utc
from src.core.scheduling.models import ScheduleCreateDTO, ScheduleDefinition, ScheduleUpdateDTO
from src.core.scheduling.repository import ScheduleRepository

if TYPE_CHECKING:
    from src.core.subscriptions.limits import SubscriptionLimitsTracker
    from src.infra.database import DatabaseManager


class ScheduleService:
    """Расписания доступны только клиентам с действующей подпиской."""

    def __init__(
        self,
        db: "DatabaseManager",
        limits: "SubscriptionLimitsTracker",
        repository: ScheduleRepository | None = None,
    ) -> None:
        self._limits = limits
        self.repository = repository or ScheduleRepository(db)

    async def create(self, dto: ScheduleCreateDTO) -> ScheduleDefinition:
        """
        Raises:
            BadRequestError: нет активной подписки или лимит заказов исчерпан
        """
        limits = await self._limits.check_order_limits(dto.customer_id)
        if limits.subscription_id is None or limits.is_expired:
            raise BadRequestError(
                "Заказы по расписанию доступны только для пользователей с активной подпиской",
                details={"customer_id": dto.customer_id},
            )
        if not limits.can_create_order:
            raise BadRequestError(
                "Превышен лимит заказов для вашей подписки",
                details={"customer_id": dto.customer_id},
            )

        schedule = ScheduleDefinition(
            customer_id=dto.customer_id,
            address=dto.address,
            address_details=dto.address_details,
            description=dto.description,
            notes=dto.notes,
            frequency=dto.frequency,
            preferred_time=dto.preferred_time,
            days_of_week=dto.days_of_week,
            start_date=ensure_utc(dto.start_date),
            end_date=ensure_utc(dto.end_date),
        )
        await self.repository.create(schedule)

        await log_info(
            f"Создано расписание заказов для пользователя {dto.customer_id}: {schedule.id}",
            type_msg=TypeMsg.INFO,
            extra={"schedule_id": schedule.id, "frequency": schedule.frequency.value},
        )
        return schedule

    async def get(self, schedule_id: str) -> ScheduleDefinition:
        schedule = await self.repository.get_by_id(schedule_id)
        if schedule is None:
            raise NotFoundError("Расписание не найдено", details={"schedule_id": schedule_id})
        return schedule

    async def list_for_customer(self, customer_id: str) -> list[ScheduleDefinition]:
        return await self.repository.list_by_customer(customer_id)

    async def update(self, schedule_id: str, dto: ScheduleUpdateDTO) -> ScheduleDefinition:
        current = await self.get(schedule_id)
        changes = dto.model_dump(exclude_unset=True)

        frequency = changes.get("frequency", current.frequency)
        days = changes.get("days_of_week", current.days_of_week)
        if frequency == ScheduleFrequency.CUSTOM and not days:
            raise BadRequestError("Для custom нужно указать дни недели", details={"schedule_id": schedule_id})

        for key in ("start_date", "end_date"):
            if changes.get(key) is not None:
                changes[key] = ensure_utc(changes[key])

        updated = await self.repository.update(schedule_id, changes)
        if updated is None:
            raise NotFoundError("Расписание не найдено", details={"schedule_id": schedule_id})
        return updated

    async def activate(self, schedule_id: str) -> ScheduleDefinition:
        return await self.update(schedule_id, ScheduleUpdateDTO(is_active=True))

    async def deactivate(self, schedule_id: str) -> ScheduleDefinition:
        return await self.update(schedule_id, ScheduleUpdateDTO(is_active=False))

    async def delete(self, schedule_id: str) -> None:
        await self.get(schedule_id)
        await self.repository.delete(schedule_id)
        await log_info(f"Удалено расписание {schedule_id}", type_msg=TypeMsg.INFO)
