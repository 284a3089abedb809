# src/core/subscriptions/repository.py
"""
Репозиторий подписок.

Счётчик used_orders меняется только условными UPDATE: проверка лимита
и инкремент выполняются одной командой.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Record

from src.common.constants import UNLIMITED_ORDERS, SubscriptionStatus, SubscriptionType
from src.core.subscriptions.models import Subscription
from src.infra.database import Executor

_SUBSCRIPTION_COLUMNS = """
    id, user_id, type, status, price, orders_limit, used_orders,
    start_date, end_date, canceled_at, created_at, updated_at
"""


class SubscriptionRepository:
    """Репозиторий подписок."""

    def __init__(self, db: Executor) -> None:
        self._db = db

    def _executor(self, conn: Executor | None) -> Executor:
        return conn if conn is not None else self._db

    async def create(self, subscription: Subscription, conn: Executor | None = None) -> Subscription:
        await self._executor(conn).execute(
            f"""
            INSERT INTO subscriptions ({_SUBSCRIPTION_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            """,
            subscription.id,
            subscription.user_id,
            subscription.type.value,
            subscription.status.value,
            subscription.price,
            subscription.orders_limit,
            subscription.used_orders,
            subscription.start_date,
            subscription.end_date,
            subscription.canceled_at,
            subscription.created_at,
            subscription.updated_at,
        )
        return subscription

    async def get_by_id(
        self,
        subscription_id: str,
        conn: Executor | None = None,
        for_update: bool = False,
    ) -> Optional[Subscription]:
        lock = " FOR UPDATE" if for_update else ""
        row = await self._executor(conn).fetchrow(
            f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE id = $1{lock}",
            subscription_id,
        )
        return self._row_to_subscription(row) if row else None

    async def get_active_for_user(
        self,
        user_id: str,
        conn: Executor | None = None,
        for_update: bool = False,
    ) -> Optional[Subscription]:
        """Активная подписка пользователя (их не больше одной)."""
        lock = " FOR UPDATE" if for_update else ""
        row = await self._executor(conn).fetchrow(
            f"""
            SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions
            WHERE user_id = $1 AND status = $2{lock}
            """,
            user_id,
            SubscriptionStatus.ACTIVE.value,
        )
        return self._row_to_subscription(row) if row else None

    async def list_by_user(self, user_id: str) -> list[Subscription]:
        rows = await self._db.fetch(
            f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE user_id = $1 ORDER BY created_at DESC",
            user_id,
        )
        return [self._row_to_subscription(row) for row in rows]

    async def update_status(
        self,
        subscription_id: str,
        status: SubscriptionStatus,
        *,
        canceled_at: datetime | None = None,
        conn: Executor | None = None,
    ) -> Optional[Subscription]:
        row = await self._executor(conn).fetchrow(
            f"""
            UPDATE subscriptions
            SET status = $2,
                canceled_at = COALESCE($3, canceled_at),
                updated_at = NOW()
            WHERE id = $1
            RETURNING {_SUBSCRIPTION_COLUMNS}
            """,
            subscription_id,
            status.value,
            canceled_at,
        )
        return self._row_to_subscription(row) if row else None

    async def expire_if_active(self, subscription_id: str, conn: Executor | None = None) -> bool:
        """active -> expired. False, если подписка уже не активна."""
        row = await self._executor(conn).fetchrow(
            """
            UPDATE subscriptions SET status = $2, updated_at = NOW()
            WHERE id = $1 AND status = $3
            RETURNING id
            """,
            subscription_id,
            SubscriptionStatus.EXPIRED.value,
            SubscriptionStatus.ACTIVE.value,
        )
        return row is not None

    async def expire_ended(self, now: datetime) -> list[Subscription]:
        """Переводит в expired все активные подписки с end_date в прошлом."""
        rows = await self._db.fetch(
            f"""
            UPDATE subscriptions SET status = $1, updated_at = NOW()
            WHERE status = $2 AND end_date < $3
            RETURNING {_SUBSCRIPTION_COLUMNS}
            """,
            SubscriptionStatus.EXPIRED.value,
            SubscriptionStatus.ACTIVE.value,
            now,
        )
        return [self._row_to_subscription(row) for row in rows]

    async def increment_used_orders(self, user_id: str, conn: Executor | None = None) -> Optional[Subscription]:
        """
        +1 к used_orders активной лимитной подписки, если лимит не исчерпан.
        None: подписки нет, она безлимитная или лимит уже выбран.
        """
        row = await self._executor(conn).fetchrow(
            f"""
            UPDATE subscriptions
            SET used_orders = used_orders + 1, updated_at = NOW()
            WHERE user_id = $1 AND status = $2
              AND orders_limit <> $3 AND used_orders < orders_limit
            RETURNING {_SUBSCRIPTION_COLUMNS}
            """,
            user_id,
            SubscriptionStatus.ACTIVE.value,
            UNLIMITED_ORDERS,
        )
        return self._row_to_subscription(row) if row else None

    async def decrement_used_orders(self, user_id: str, conn: Executor | None = None) -> Optional[Subscription]:
        """-1 к used_orders активной лимитной подписки, не ниже нуля."""
        row = await self._executor(conn).fetchrow(
            f"""
            UPDATE subscriptions
            SET used_orders = used_orders - 1, updated_at = NOW()
            WHERE user_id = $1 AND status = $2
              AND orders_limit <> $3 AND used_orders > 0
            RETURNING {_SUBSCRIPTION_COLUMNS}
            """,
            user_id,
            SubscriptionStatus.ACTIVE.value,
            UNLIMITED_ORDERS,
        )
        return self._row_to_subscription(row) if row else None

    @staticmethod
    def _row_to_subscription(row: Record | dict) -> Subscription:
        return Subscription(
            id=row["id"],
            user_id=row["user_id"],
            type=SubscriptionType(row["type"]),
            status=SubscriptionStatus(row["status"]),
            price=row["price"],
            orders_limit=row["orders_limit"],
            used_orders=row["used_orders"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            canceled_at=row["canceled_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
