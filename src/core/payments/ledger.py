# src/core/payments/ledger.py
"""
Журнал платежей.

Любое изменение статуса идёт через set_status: строка платежа блокируется
(SELECT ... FOR UPDATE), решение принимается по текущему статусу в БД.
Повторы и запоздалые события безопасны.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import asyncpg

from src.common.constants import PaymentMethod, PaymentStatus, PaymentSubject, TypeMsg
from src.common.exceptions import ConflictError, NotFoundError
from src.common.logger import log_info, log_warning
from src.common.utils import utc_now
from src.core.payments import policy
from src.core.payments.models import Payment, PaymentStatusChange
from src.core.payments.repository import PaymentRepository
from src.shared.events.payment_events import PaymentStatusChanged

if TYPE_CHECKING:
    from src.config.loader import PaymentSettings
    from src.infra.database import DatabaseManager, Executor
    from src.infra.event_bus import EventBus


class PaymentLedger:
    """
    Журнал платежей заказов и подписок.

    Ответственности:
    - Открытие платежа (pending + ссылка на оплату)
    - Поиск по ID и по ID провайдера
    - Идемпотентная смена статуса с защитой терминальных статусов
    """

    def __init__(
        self,
        db: "DatabaseManager",
        event_bus: "EventBus | None" = None,
        payment_settings: "PaymentSettings | None" = None,
        repository: PaymentRepository | None = None,
    ) -> None:
        if payment_settings is None:
            from src.config import settings
            payment_settings = settings.payments

        self._db = db
        self._event_bus = event_bus
        self._settings = payment_settings
        self.repository = repository or PaymentRepository(db)

    # === ОТКРЫТИЕ ===

    async def open(
        self,
        subject_id: str,
        amount: int,
        subject_kind: PaymentSubject,
        *,
        method: PaymentMethod = PaymentMethod.ONLINE,
        status: PaymentStatus = PaymentStatus.PENDING,
        conn: "Executor | None" = None,
    ) -> Payment:
        """
        Создаёт платёж с новым ID.

        Для pending-платежа сразу формируется ссылка на страницу оплаты.
        Платёж по подписке (method=subscription) создаётся уже оплаченным.
        """
        now = utc_now()
        payment = Payment(
            order_id=subject_id if subject_kind == PaymentSubject.ORDER else None,
            subscription_id=subject_id if subject_kind == PaymentSubject.SUBSCRIPTION else None,
            amount=amount,
            method=method,
            status=status,
            created_at=now,
            updated_at=now,
            paid_at=now if status == PaymentStatus.PAID else None,
        )

        if status == PaymentStatus.PENDING:
            if subject_kind == PaymentSubject.ORDER:
                payment.payment_url = self._settings.order_payment_url(payment.id)
            else:
                payment.payment_url = self._settings.subscription_payment_url(payment.id)

        await self.repository.create(payment, conn=conn)

        await log_info(
            f"Открыт платёж {payment.id} ({subject_kind.value} {subject_id}) на {amount}",
            type_msg=TypeMsg.DEBUG,
            extra={"payment_id": payment.id, "subject_id": subject_id, "status": status.value},
        )
        return payment

    # === ЧТЕНИЕ ===

    async def find(self, payment_id: str) -> Optional[Payment]:
        return await self.repository.get_by_id(payment_id)

    async def get(self, payment_id: str) -> Payment:
        """Платёж по ID или NotFoundError."""
        payment = await self.repository.get_by_id(payment_id)
        if payment is None:
            raise NotFoundError(f"Платёж {payment_id} не найден", details={"payment_id": payment_id})
        return payment

    async def find_by_provider_id(self, provider_id: str) -> Optional[Payment]:
        return await self.repository.get_by_provider_id(provider_id)

    async def list_for_order(self, order_id: str) -> list[Payment]:
        return await self.repository.list_by_order(order_id)

    # === СМЕНА СТАТУСА ===

    async def set_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        *,
        provider_id: str | None = None,
        error_message: str | None = None,
    ) -> PaymentStatusChange:
        """
        Переводит платёж в новый статус.

        - тот же статус повторно: no-op, applied=False
        - откат терминального статуса (или назад по порядку): отклоняется, applied=False
        - paid -> refunded допустим

        Raises:
            NotFoundError: платёж не найден
            ConflictError: provider_id уже привязан к другому платежу
        """
        async with self._db.transaction() as conn:
            current = await self.repository.get_by_id(payment_id, conn=conn, for_update=True)
            if current is None:
                raise NotFoundError(f"Платёж {payment_id} не найден", details={"payment_id": payment_id})

            previous_status = current.status

            if previous_status == status:
                # Повтор: дописываем только provider_id, если его ещё не было
                if provider_id and not current.provider_id:
                    try:
                        current = await self.repository.set_provider_id(payment_id, provider_id, conn=conn) or current
                    except asyncpg.UniqueViolationError as e:
                        raise _provider_conflict(payment_id, provider_id) from e
                return PaymentStatusChange(payment=current, previous_status=previous_status, applied=False)

            if not policy.can_apply(previous_status, status):
                await log_warning(
                    f"Платёж {payment_id}: переход {previous_status.value} -> {status.value} отклонён",
                    extra={"payment_id": payment_id},
                )
                return PaymentStatusChange(payment=current, previous_status=previous_status, applied=False)

            now = utc_now()
            try:
                updated = await self.repository.update_status(
                    payment_id,
                    status,
                    updated_at=now,
                    paid_at=now if status == PaymentStatus.PAID else None,
                    refunded_at=now if status == PaymentStatus.REFUNDED else None,
                    provider_id=provider_id,
                    error_message=error_message,
                    conn=conn,
                )
            except asyncpg.UniqueViolationError as e:
                raise _provider_conflict(payment_id, provider_id) from e

        payment = updated or current
        await log_info(
            f"Платёж {payment_id}: {previous_status.value} -> {status.value}",
            extra={"payment_id": payment_id, "subject_id": payment.subject_id},
        )
        await self._publish_change(payment, previous_status)

        return PaymentStatusChange(payment=payment, previous_status=previous_status, applied=True)

    async def _publish_change(self, payment: Payment, previous_status: PaymentStatus) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(PaymentStatusChanged(
            payment_id=payment.id,
            subject=payment.subject.value,
            subject_id=payment.subject_id,
            previous_status=previous_status.value,
            status=payment.status.value,
            provider_id=payment.provider_id,
            amount=payment.amount,
        ))


def _provider_conflict(payment_id: str, provider_id: str | None) -> ConflictError:
    return ConflictError(
        "provider_id уже привязан к другому платежу",
        details={"payment_id": payment_id, "provider_id": provider_id},
    )
