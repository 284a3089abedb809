# src/core/scheduling/repository.py
"""
Репозиторий расписаний регулярных заказов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from asyncpg import Record

from src.common.constants import ScheduleFrequency
from src.common.utils import dump_jsonb, load_jsonb
from src.core.orders.models import AddressDetails
from src.core.scheduling.models import ScheduleDefinition
from src.infra.database import Executor

_SCHEDULE_COLUMNS = """
    id, customer_id, address, address_details, description, notes, frequency,
    preferred_time, days_of_week, start_date, end_date, is_active,
    last_created_at, created_at, updated_at
"""

# Поля, которые можно менять через update()
_UPDATABLE = (
    "address", "address_details", "description", "notes", "frequency",
    "preferred_time", "days_of_week", "start_date", "end_date", "is_active",
)


class ScheduleRepository:
    """Репозиторий расписаний."""

    def __init__(self, db: Executor) -> None:
        self._db = db

    def _executor(self, conn: Executor | None) -> Executor:
        return conn if conn is not None else self._db

    async def create(self, schedule: ScheduleDefinition, conn: Executor | None = None) -> ScheduleDefinition:
        await self._executor(conn).execute(
            f"""
            INSERT INTO scheduled_orders ({_SCHEDULE_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)
            """,
            schedule.id,
            schedule.customer_id,
            schedule.address,
            dump_jsonb(schedule.address_details.model_dump() if schedule.address_details else None),
            schedule.description,
            schedule.notes,
            schedule.frequency.value,
            schedule.preferred_time,
            schedule.days_of_week,
            schedule.start_date,
            schedule.end_date,
            schedule.is_active,
            schedule.last_created_at,
            schedule.created_at,
            schedule.updated_at,
        )
        return schedule

    async def get_by_id(self, schedule_id: str) -> Optional[ScheduleDefinition]:
        row = await self._db.fetchrow(
            f"SELECT {_SCHEDULE_COLUMNS} FROM scheduled_orders WHERE id = $1",
            schedule_id,
        )
        return self._row_to_schedule(row) if row else None

    async def list_by_customer(self, customer_id: str) -> list[ScheduleDefinition]:
        rows = await self._db.fetch(
            f"SELECT {_SCHEDULE_COLUMNS} FROM scheduled_orders WHERE customer_id = $1 ORDER BY created_at DESC",
            customer_id,
        )
        return [self._row_to_schedule(row) for row in rows]

    async def list_active_ids(self) -> list[str]:
        rows = await self._db.fetch(
            "SELECT id FROM scheduled_orders WHERE is_active = TRUE ORDER BY created_at",
        )
        return [row["id"] for row in rows]

    async def lock_active(self, schedule_id: str, conn: Executor) -> Optional[ScheduleDefinition]:
        """
        Блокирует активное расписание до конца транзакции.
        Расписание, занятое другим процессом, пропускается (None).
        """
        row = await conn.fetchrow(
            f"""
            SELECT {_SCHEDULE_COLUMNS} FROM scheduled_orders
            WHERE id = $1 AND is_active = TRUE
            FOR UPDATE SKIP LOCKED
            """,
            schedule_id,
        )
        return self._row_to_schedule(row) if row else None

    async def update(self, schedule_id: str, changes: dict[str, Any]) -> Optional[ScheduleDefinition]:
        """Обновляет переданные поля. Пустой набор изменений просто читает запись."""
        fields = [name for name in _UPDATABLE if name in changes]
        if not fields:
            return await self.get_by_id(schedule_id)

        values: list[Any] = []
        for name in fields:
            value = changes[name]
            if name == "address_details":
                value = dump_jsonb(value.model_dump() if isinstance(value, AddressDetails) else value)
            elif name == "frequency" and isinstance(value, ScheduleFrequency):
                value = value.value
            values.append(value)

        assignments = ", ".join(f"{name} = ${index}" for index, name in enumerate(fields, start=2))
        row = await self._db.fetchrow(
            f"""
            UPDATE scheduled_orders SET {assignments}, updated_at = NOW()
            WHERE id = $1
            RETURNING {_SCHEDULE_COLUMNS}
            """,
            schedule_id,
            *values,
        )
        return self._row_to_schedule(row) if row else None

    async def set_active(self, schedule_id: str, is_active: bool, conn: Executor | None = None) -> None:
        await self._executor(conn).execute(
            "UPDATE scheduled_orders SET is_active = $2, updated_at = NOW() WHERE id = $1",
            schedule_id,
            is_active,
        )

    async def set_last_created_at(self, schedule_id: str, created_at: datetime, conn: Executor | None = None) -> None:
        await self._executor(conn).execute(
            "UPDATE scheduled_orders SET last_created_at = $2, updated_at = NOW() WHERE id = $1",
            schedule_id,
            created_at,
        )

    async def deactivate_for_customer(self, customer_id: str) -> int:
        """Выключает все активные расписания клиента, возвращает их количество."""
        rows = await self._db.fetch(
            """
            UPDATE scheduled_orders SET is_active = FALSE, updated_at = NOW()
            WHERE customer_id = $1 AND is_active = TRUE
            RETURNING id
            """,
            customer_id,
        )
        return len(rows)

    async def delete(self, schedule_id: str) -> bool:
        result = await self._db.execute("DELETE FROM scheduled_orders WHERE id = $1", schedule_id)
        return result.endswith(" 1")

    @staticmethod
    def _row_to_schedule(row: Record | dict) -> ScheduleDefinition:
        details = load_jsonb(row["address_details"])
        return ScheduleDefinition(
            id=row["id"],
            customer_id=row["customer_id"],
            address=row["address"],
            address_details=AddressDetails(**details) if details else None,
            description=row["description"],
            notes=row["notes"],
            frequency=ScheduleFrequency(row["frequency"]),
            preferred_time=row["preferred_time"],
            days_of_week=list(row["days_of_week"]) if row["days_of_week"] is not None else None,
            start_date=row["start_date"],
            end_date=row["end_date"],
            is_active=row["is_active"],
            last_created_at=row["last_created_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
