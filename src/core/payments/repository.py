# src/core/payments/repository.py
"""
Репозиторий платежей.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Record

from src.common.constants import PaymentMethod, PaymentStatus
from src.core.payments.models import Payment
from src.infra.database import Executor

_PAYMENT_COLUMNS = """
    id, order_id, subscription_id, amount, method, status, provider_id,
    payment_url, error_message, created_at, updated_at, paid_at, refunded_at
"""


class PaymentRepository:
    """
    Репозиторий платежей.
    Методы принимают conn, чтобы работать внутри транзакции вызывающего кода.
    """

    def __init__(self, db: Executor) -> None:
        self._db = db

    def _executor(self, conn: Executor | None) -> Executor:
        return conn if conn is not None else self._db

    async def create(self, payment: Payment, conn: Executor | None = None) -> Payment:
        await self._executor(conn).execute(
            """
            INSERT INTO payments (
                id, order_id, subscription_id, amount, method, status, provider_id,
                payment_url, error_message, created_at, updated_at, paid_at, refunded_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            """,
            payment.id,
            payment.order_id,
            payment.subscription_id,
            payment.amount,
            payment.method.value,
            payment.status.value,
            payment.provider_id,
            payment.payment_url,
            payment.error_message,
            payment.created_at,
            payment.updated_at,
            payment.paid_at,
            payment.refunded_at,
        )
        return payment

    async def get_by_id(
        self,
        payment_id: str,
        conn: Executor | None = None,
        for_update: bool = False,
    ) -> Optional[Payment]:
        """
        Платёж по ID. for_update=True блокирует строку до конца транзакции
        (имеет смысл только с conn из db.transaction()).
        """
        lock = " FOR UPDATE" if for_update else ""
        row = await self._executor(conn).fetchrow(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE id = $1{lock}",
            payment_id,
        )
        return self._row_to_payment(row) if row else None

    async def get_by_provider_id(self, provider_id: str, conn: Executor | None = None) -> Optional[Payment]:
        row = await self._executor(conn).fetchrow(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE provider_id = $1",
            provider_id,
        )
        return self._row_to_payment(row) if row else None

    async def list_by_order(self, order_id: str) -> list[Payment]:
        rows = await self._db.fetch(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE order_id = $1 ORDER BY created_at",
            order_id,
        )
        return [self._row_to_payment(row) for row in rows]

    async def has_pending_for_subscription(self, subscription_id: str, conn: Executor | None = None) -> bool:
        value = await self._executor(conn).fetchval(
            "SELECT EXISTS(SELECT 1 FROM payments WHERE subscription_id = $1 AND status = $2)",
            subscription_id,
            PaymentStatus.PENDING.value,
        )
        return bool(value)

    async def update_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        *,
        updated_at: datetime,
        paid_at: datetime | None = None,
        refunded_at: datetime | None = None,
        provider_id: str | None = None,
        error_message: str | None = None,
        conn: Executor | None = None,
    ) -> Optional[Payment]:
        """
        Записывает новый статус. Временные метки и provider_id не затираются,
        если переданы как None.
        """
        row = await self._executor(conn).fetchrow(
            f"""
            UPDATE payments
            SET status = $2,
                updated_at = $3,
                paid_at = COALESCE($4, paid_at),
                refunded_at = COALESCE($5, refunded_at),
                provider_id = COALESCE($6, provider_id),
                error_message = COALESCE($7, error_message)
            WHERE id = $1
            RETURNING {_PAYMENT_COLUMNS}
            """,
            payment_id,
            status.value,
            updated_at,
            paid_at,
            refunded_at,
            provider_id,
            error_message,
        )
        return self._row_to_payment(row) if row else None

    async def set_provider_id(
        self,
        payment_id: str,
        provider_id: str,
        conn: Executor | None = None,
    ) -> Optional[Payment]:
        row = await self._executor(conn).fetchrow(
            f"""
            UPDATE payments SET provider_id = $2, updated_at = NOW()
            WHERE id = $1
            RETURNING {_PAYMENT_COLUMNS}
            """,
            payment_id,
            provider_id,
        )
        return self._row_to_payment(row) if row else None

    @staticmethod
    def _row_to_payment(row: Record | dict) -> Payment:
        return Payment(
            id=row["id"],
            order_id=row["order_id"],
            subscription_id=row["subscription_id"],
            amount=row["amount"],
            method=PaymentMethod(row["method"]),
            status=PaymentStatus(row["status"]),
            provider_id=row["provider_id"],
            payment_url=row["payment_url"],
            error_message=row["error_message"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            paid_at=row["paid_at"],
            refunded_at=row["refunded_at"],
        )
