# src/core/subscriptions/service.py
"""
Сервис подписок: создание, оплата, активация, смена статуса.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import asyncpg

from src.common.constants import PaymentSubject, SubscriptionStatus, TypeMsg
from src.common.exceptions import (
    BadRequestError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from src.common.logger import log_info
from src.common.utils import ensure_utc, utc_now
from src.core.payments.models import Payment
from src.core.subscriptions.limits import SubscriptionLimitsTracker
from src.core.subscriptions.models import Subscription, SubscriptionCreateDTO, UsageStats
from src.core.subscriptions.repository import SubscriptionRepository
from src.core.users.repository import UserRepository
from src.shared.events.subscription_events import SubscriptionActivated

if TYPE_CHECKING:
    from src.core.payments.ledger import PaymentLedger
    from src.core.scheduling.repository import ScheduleRepository
    from src.infra.database import DatabaseManager
    from src.infra.event_bus import EventBus


class SubscriptionService:
    """
    Сервис подписок.

    У пользователя не больше одной активной подписки: это проверяется
    при создании и при активации, в БД дополнительно стоит частичный
    уникальный индекс.
    """

    def __init__(
        self,
        db: "DatabaseManager",
        ledger: "PaymentLedger",
        limits: SubscriptionLimitsTracker,
        users: UserRepository | None = None,
        repository: SubscriptionRepository | None = None,
        event_bus: "EventBus | None" = None,
        schedules: "ScheduleRepository | None" = None,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._limits = limits
        self._users = users or UserRepository(db)
        self._event_bus = event_bus
        self._schedules = schedules
        self.repository = repository or SubscriptionRepository(db)

    # =========================================================================
    # СОЗДАНИЕ И ЧТЕНИЕ
    # =========================================================================

    async def create(self, dto: SubscriptionCreateDTO) -> Subscription:
        """
        Создаёт подписку в статусе pending.

        Raises:
            NotFoundError: пользователь не найден
            ConflictError: у пользователя уже есть активная подписка
        """
        user = await self._users.get_by_id(dto.user_id)
        if user is None:
            raise NotFoundError("Пользователь не найден", details={"user_id": dto.user_id})

        async with self._db.transaction() as conn:
            active = await self.repository.get_active_for_user(dto.user_id, conn=conn, for_update=True)
            if active is not None:
                raise ConflictError(
                    "У пользователя уже есть активная подписка",
                    details={"user_id": dto.user_id, "subscription_id": active.id},
                )

            subscription = Subscription(
                user_id=dto.user_id,
                type=dto.type,
                price=dto.price,
                orders_limit=dto.orders_limit,
                used_orders=dto.used_orders,
                start_date=ensure_utc(dto.start_date),
                end_date=ensure_utc(dto.end_date),
            )
            await self.repository.create(subscription, conn=conn)

        await log_info(
            f"Создана подписка {subscription.id} ({subscription.type.value}) для {dto.user_id}",
            type_msg=TypeMsg.INFO,
            extra={"subscription_id": subscription.id, "user_id": dto.user_id},
        )
        return subscription

    async def get(self, subscription_id: str) -> Subscription:
        subscription = await self.repository.get_by_id(subscription_id)
        if subscription is None:
            raise NotFoundError("Подписка не найдена", details={"subscription_id": subscription_id})
        return subscription

    async def list_for_user(self, user_id: str) -> list[Subscription]:
        return await self.repository.list_by_user(user_id)

    async def get_active(self, user_id: str) -> Optional[Subscription]:
        return await self.repository.get_active_for_user(user_id)

    async def get_usage_stats(self, user_id: str) -> UsageStats:
        return await self._limits.get_usage_stats(user_id)

    # =========================================================================
    # ОПЛАТА И АКТИВАЦИЯ
    # =========================================================================

    async def open_payment(self, subscription_id: str) -> Payment:
        """
        Открывает платёж за подписку со ссылкой на страницу оплаты.

        Raises:
            NotFoundError: подписка не найдена
            BadRequestError: подписка не pending или уже есть незавершённый платёж
        """
        subscription = await self.get(subscription_id)
        if subscription.status != SubscriptionStatus.PENDING:
            raise BadRequestError(
                f"Подписку в статусе {subscription.status.value} нельзя оплатить",
                details={"subscription_id": subscription_id},
            )

        if await self._ledger.repository.has_pending_for_subscription(subscription_id):
            raise BadRequestError(
                "У подписки уже есть ожидающий оплаты платёж",
                details={"subscription_id": subscription_id},
            )

        return await self._ledger.open(subscription_id, subscription.price, PaymentSubject.SUBSCRIPTION)

    async def activate(self, subscription_id: str, payment_id: str | None = None) -> Subscription:
        """
        pending -> active после успешной оплаты.

        Raises:
            NotFoundError: подписка не найдена
            InvalidTransitionError: подписка уже активна или завершена
            ConflictError: у пользователя есть другая активная подписка
        """
        async with self._db.transaction() as conn:
            subscription = await self.repository.get_by_id(subscription_id, conn=conn, for_update=True)
            if subscription is None:
                raise NotFoundError("Подписка не найдена", details={"subscription_id": subscription_id})

            if subscription.status != SubscriptionStatus.PENDING:
                raise InvalidTransitionError(
                    subscription.status.value,
                    SubscriptionStatus.ACTIVE.value,
                    entity="subscription",
                )

            other = await self.repository.get_active_for_user(subscription.user_id, conn=conn, for_update=True)
            if other is not None:
                raise ConflictError(
                    "У пользователя уже есть активная подписка",
                    details={"user_id": subscription.user_id, "subscription_id": other.id},
                )

            try:
                activated = await self.repository.update_status(
                    subscription_id, SubscriptionStatus.ACTIVE, conn=conn,
                ) or subscription
            except asyncpg.UniqueViolationError as e:
                # Частичный уникальный индекс: одна активная подписка на пользователя
                raise ConflictError(
                    "У пользователя уже есть активная подписка",
                    details={"user_id": subscription.user_id, "subscription_id": subscription_id},
                ) from e

        await log_info(
            f"Подписка {subscription_id} активирована",
            type_msg=TypeMsg.INFO,
            extra={"subscription_id": subscription_id, "payment_id": payment_id},
        )
        if self._event_bus is not None:
            await self._event_bus.publish(SubscriptionActivated(
                subscription_id=subscription_id,
                user_id=activated.user_id,
                payment_id=payment_id,
            ))
        return activated

    async def update_status(self, subscription_id: str, status: SubscriptionStatus) -> Subscription:
        """
        Ручная смена статуса. Отмена проставляет canceled_at,
        активация идёт через те же проверки, что и после оплаты.
        """
        if status == SubscriptionStatus.ACTIVE:
            return await self.activate(subscription_id)

        await self.get(subscription_id)
        canceled_at = utc_now() if status == SubscriptionStatus.CANCELED else None
        updated = await self.repository.update_status(subscription_id, status, canceled_at=canceled_at)
        if updated is None:
            raise NotFoundError("Подписка не найдена", details={"subscription_id": subscription_id})

        await log_info(
            f"Статус подписки {subscription_id} изменён на {status.value}",
            type_msg=TypeMsg.INFO,
            extra={"subscription_id": subscription_id},
        )
        return updated

    async def expire_ended(self) -> list[Subscription]:
        """
        Периодическая проверка: завершает подписки с прошедшей end_date
        и выключает расписания их владельцев.
        """
        expired = await self._limits.sweep_expired()
        if not expired:
            return expired

        deactivated = 0
        if self._schedules is not None:
            for user_id in {s.user_id for s in expired}:
                deactivated += await self._schedules.deactivate_for_customer(user_id)

        await log_info(
            f"Завершено подписок по сроку: {len(expired)}, выключено расписаний: {deactivated}",
            type_msg=TypeMsg.INFO,
        )
        return expired
