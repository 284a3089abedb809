# src/core/orders/repository.py
"""
Репозиторий для работы с заказами в БД.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Record

from src.common.constants import OrderStatus
from src.common.utils import dump_jsonb, load_jsonb
from src.core.orders.models import AddressDetails, Order
from src.infra.database import Executor

_ORDER_COLUMNS = """
    id, customer_id, courier_id, schedule_id, address, address_details,
    description, notes, price, number_packages, status, payment_url,
    scheduled_at, assigned_at, overdue_minutes, overdue_notified_at,
    created_at, updated_at
"""


class OrderRepository:
    """Репозиторий заказов."""

    def __init__(self, db: Executor) -> None:
        """
        Args:
            db: Менеджер базы данных или соединение транзакции
        """
        self._db = db

    def _executor(self, conn: Executor | None) -> Executor:
        return conn if conn is not None else self._db

    async def create(self, order: Order, conn: Executor | None = None) -> Order:
        await self._executor(conn).execute(
            f"""
            INSERT INTO orders ({_ORDER_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18)
            """,
            order.id,
            order.customer_id,
            order.courier_id,
            order.schedule_id,
            order.address,
            dump_jsonb(order.address_details.model_dump() if order.address_details else None),
            order.description,
            order.notes,
            order.price,
            order.number_packages,
            order.status.value,
            order.payment_url,
            order.scheduled_at,
            order.assigned_at,
            order.overdue_minutes,
            order.overdue_notified_at,
            order.created_at,
            order.updated_at,
        )
        return order

    async def get_by_id(
        self,
        order_id: str,
        conn: Executor | None = None,
        for_update: bool = False,
    ) -> Optional[Order]:
        lock = " FOR UPDATE" if for_update else ""
        row = await self._executor(conn).fetchrow(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = $1{lock}",
            order_id,
        )
        return self._row_to_order(row) if row else None

    async def list_by_customer(self, customer_id: str) -> list[Order]:
        rows = await self._db.fetch(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE customer_id = $1 ORDER BY created_at DESC",
            customer_id,
        )
        return [self._row_to_order(row) for row in rows]

    async def list_by_courier(self, courier_id: str) -> list[Order]:
        rows = await self._db.fetch(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE courier_id = $1 ORDER BY scheduled_at",
            courier_id,
        )
        return [self._row_to_order(row) for row in rows]

    async def list_available(self) -> list[Order]:
        """Оплаченные заказы без курьера: их можно взять."""
        rows = await self._db.fetch(
            f"""
            SELECT {_ORDER_COLUMNS} FROM orders
            WHERE status = $1 AND courier_id IS NULL
            ORDER BY scheduled_at
            """,
            OrderStatus.PAID.value,
        )
        return [self._row_to_order(row) for row in rows]

    async def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        *,
        expected_status: OrderStatus,
        courier_id: str | None = None,
        assigned_at: datetime | None = None,
        overdue_minutes: int | None = None,
        conn: Executor | None = None,
    ) -> Optional[Order]:
        """
        Меняет статус, только если заказ всё ещё в expected_status.
        None означает, что заказ успел измениться (или исчез).
        """
        row = await self._executor(conn).fetchrow(
            f"""
            UPDATE orders
            SET status = $2,
                courier_id = COALESCE($4, courier_id),
                assigned_at = COALESCE($5, assigned_at),
                overdue_minutes = COALESCE(overdue_minutes, $6),
                updated_at = NOW()
            WHERE id = $1 AND status = $3
            RETURNING {_ORDER_COLUMNS}
            """,
            order_id,
            status.value,
            expected_status.value,
            courier_id,
            assigned_at,
            overdue_minutes,
        )
        return self._row_to_order(row) if row else None

    async def set_courier(
        self,
        order_id: str,
        courier_id: str,
        assigned_at: datetime,
        conn: Executor | None = None,
    ) -> Optional[Order]:
        """Смена курьера без смены статуса."""
        row = await self._executor(conn).fetchrow(
            f"""
            UPDATE orders
            SET courier_id = $2, assigned_at = $3, updated_at = NOW()
            WHERE id = $1
            RETURNING {_ORDER_COLUMNS}
            """,
            order_id,
            courier_id,
            assigned_at,
        )
        return self._row_to_order(row) if row else None

    async def set_payment_url(self, order_id: str, url: str, conn: Executor | None = None) -> None:
        await self._executor(conn).execute(
            "UPDATE orders SET payment_url = $2, updated_at = NOW() WHERE id = $1",
            order_id,
            url,
        )

    async def delete(self, order_id: str) -> bool:
        result = await self._db.execute("DELETE FROM orders WHERE id = $1", order_id)
        return result.endswith(" 1")

    async def list_overdue_candidates(self, scheduled_before: datetime, limit: int = 100) -> list[Order]:
        """
        Заказы с курьером, которые должны были начаться до scheduled_before
        и по которым ещё не было уведомления о просрочке.
        """
        rows = await self._db.fetch(
            f"""
            SELECT {_ORDER_COLUMNS} FROM orders
            WHERE courier_id IS NOT NULL
              AND status IN ($1, $2)
              AND scheduled_at IS NOT NULL
              AND scheduled_at <= $3
              AND overdue_notified_at IS NULL
            ORDER BY scheduled_at
            LIMIT $4
            """,
            OrderStatus.ASSIGNED.value,
            OrderStatus.IN_PROGRESS.value,
            scheduled_before,
            limit,
        )
        return [self._row_to_order(row) for row in rows]

    async def mark_overdue_notified(self, order_id: str, minutes: int, notified_at: datetime) -> bool:
        """
        Отмечает, что курьер получил уведомление о просрочке.
        False, если отметка уже стоит (уведомил другой процесс).
        """
        row = await self._db.fetchrow(
            """
            UPDATE orders
            SET overdue_notified_at = $3,
                overdue_minutes = COALESCE(overdue_minutes, $2),
                updated_at = NOW()
            WHERE id = $1 AND overdue_notified_at IS NULL
            RETURNING id
            """,
            order_id,
            minutes,
            notified_at,
        )
        return row is not None

    @staticmethod
    def _row_to_order(row: Record | dict) -> Order:
        details = load_jsonb(row["address_details"])
        return Order(
            id=row["id"],
            customer_id=row["customer_id"],
            courier_id=row["courier_id"],
            schedule_id=row["schedule_id"],
            address=row["address"],
            address_details=AddressDetails(**details) if details else None,
            description=row["description"],
            notes=row["notes"],
            price=row["price"],
            number_packages=row["number_packages"],
            status=OrderStatus(row["status"]),
            payment_url=row["payment_url"],
            scheduled_at=row["scheduled_at"],
            assigned_at=row["assigned_at"],
            overdue_minutes=row["overdue_minutes"],
            overdue_notified_at=row["overdue_notified_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
