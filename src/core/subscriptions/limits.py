# src/core/subscriptions/limits.py
"""
Учёт лимитов заказов по подписке.

Истечение проверяется лениво при каждой проверке лимитов: по времени
(end_date прошла) и по квоте (used_orders дошёл до orders_limit).
Проверка и изменение счётчика выполняются под блокировкой строки подписки.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.common.constants import UNLIMITED_ORDERS, ExpiryReason, TypeMsg
from src.common.logger import log_info
from src.common.utils import utc_now
from src.core.subscriptions.models import OrderLimits, Subscription, UsageStats
from src.core.subscriptions.repository import SubscriptionRepository
from src.shared.events.subscription_events import SubscriptionExpired

if TYPE_CHECKING:
    from src.infra.database import DatabaseManager, Executor
    from src.infra.event_bus import EventBus


class SubscriptionLimitsTracker:
    """Проверка, резервирование и возврат слотов заказов."""

    def __init__(
        self,
        db: "DatabaseManager",
        repository: SubscriptionRepository | None = None,
        event_bus: "EventBus | None" = None,
    ) -> None:
        self._db = db
        self._event_bus = event_bus
        self.repository = repository or SubscriptionRepository(db)

    async def check_order_limits(self, user_id: str) -> OrderLimits:
        """
        Может ли пользователь создать заказ по подписке.

        Истёкшая подписка переводится в expired, результат is_expired=True
        с причиной time или limit.
        """
        async with self._db.transaction() as conn:
            subscription = await self.repository.get_active_for_user(user_id, conn=conn, for_update=True)
            limits = await self._evaluate(subscription, conn=conn)

        if limits.is_expired and subscription is not None:
            await self._on_expired(subscription, limits.expiry_reason)
        return limits

    async def check_order_limits_locked(self, user_id: str, *, conn: "Executor") -> OrderLimits:
        """check_order_limits внутри транзакции вызывающего кода, строка подписки остаётся заблокированной."""
        subscription = await self.repository.get_active_for_user(user_id, conn=conn, for_update=True)
        limits = await self._evaluate(subscription, conn=conn)
        if limits.is_expired and subscription is not None:
            await self._on_expired(subscription, limits.expiry_reason)
        return limits

    async def reserve_order_slot(self, user_id: str, *, conn: "Executor") -> OrderLimits:
        """
        Проверка лимитов и списание одного заказа за один проход.

        Вызывается внутри транзакции создания заказа: если заказ не
        сохранится, списание откатится вместе с ним.
        """
        limits = await self.check_order_limits_locked(user_id, conn=conn)
        if not limits.can_create_order or limits.total_limit == UNLIMITED_ORDERS:
            return limits

        updated = await self.repository.increment_used_orders(user_id, conn=conn)
        if updated is None:
            return limits.model_copy(update={"can_create_order": False, "remaining_orders": 0})

        await log_info(
            f"Списан заказ по подписке {updated.id}: {updated.used_orders}/{updated.orders_limit}",
            type_msg=TypeMsg.DEBUG,
            extra={"user_id": user_id, "subscription_id": updated.id},
        )
        return OrderLimits.for_active(updated)

    async def increment_used_orders(self, user_id: str) -> None:
        """+1 заказ. Без активной или при безлимитной подписке ничего не делает."""
        updated = await self.repository.increment_used_orders(user_id)
        if updated is not None:
            await log_info(
                f"Увеличен счётчик заказов пользователя {user_id}: {updated.used_orders}/{updated.orders_limit}",
                type_msg=TypeMsg.DEBUG,
                extra={"subscription_id": updated.id},
            )

    async def decrement_used_orders(self, user_id: str) -> None:
        """-1 заказ (при отмене). Счётчик не уходит ниже нуля."""
        updated = await self.repository.decrement_used_orders(user_id)
        if updated is not None:
            await log_info(
                f"Уменьшен счётчик заказов пользователя {user_id}: {updated.used_orders}/{updated.orders_limit}",
                type_msg=TypeMsg.DEBUG,
                extra={"subscription_id": updated.id},
            )

    async def can_create_order(self, user_id: str) -> bool:
        limits = await self.check_order_limits(user_id)
        return limits.can_create_order

    async def get_usage_stats(self, user_id: str) -> UsageStats:
        limits = await self.check_order_limits(user_id)
        return UsageStats(
            used=limits.used_orders,
            total=limits.total_limit,
            remaining=limits.remaining_orders,
            is_unlimited=limits.total_limit == UNLIMITED_ORDERS,
        )

    async def expire_subscription(self, subscription: Subscription, reason: ExpiryReason) -> bool:
        """Принудительно завершает активную подписку."""
        expired = await self.repository.expire_if_active(subscription.id)
        if expired:
            await self._on_expired(subscription, reason)
        return expired

    async def sweep_expired(self) -> list[Subscription]:
        """Завершает активные подписки, у которых прошла end_date, даже без попыток заказа."""
        expired = await self.repository.expire_ended(utc_now())
        for subscription in expired:
            await self._on_expired(subscription, ExpiryReason.TIME)
        return expired

    async def _evaluate(self, subscription: Subscription | None, *, conn: "Executor | None") -> OrderLimits:
        if subscription is None:
            return OrderLimits.empty()

        if subscription.is_time_expired(utc_now()):
            await self.repository.expire_if_active(subscription.id, conn=conn)
            return OrderLimits.expired(subscription, ExpiryReason.TIME)

        if subscription.is_unlimited:
            return OrderLimits.for_active(subscription)

        if subscription.remaining_orders == 0:
            await self.repository.expire_if_active(subscription.id, conn=conn)
            return OrderLimits.expired(subscription, ExpiryReason.LIMIT)

        return OrderLimits.for_active(subscription)

    async def _on_expired(self, subscription: Subscription, reason: ExpiryReason | None) -> None:
        reason_value = reason.value if reason else ExpiryReason.TIME.value
        await log_info(
            f"Подписка {subscription.id} завершена по причине: {reason_value}",
            extra={"subscription_id": subscription.id, "user_id": subscription.user_id},
        )
        if self._event_bus is not None:
            await self._event_bus.publish(SubscriptionExpired(
                subscription_id=subscription.id,
                user_id=subscription.user_id,
                reason=reason_value,
            ))
