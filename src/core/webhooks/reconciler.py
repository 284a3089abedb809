# src/core/webhooks/reconciler.py
"""
Обработка вебхуков платёжного провайдера.

Вебхуки приходят повторно и в любом порядке, в том числе вперемешку
с ручным подтверждением оплаты. Каждый шаг здесь безопасно повторять:
статус платежа меняет только PaymentLedger.set_status, а переходы заказа
и подписки, ставшие лишними из-за повтора, логируются и не считаются ошибкой.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.common.background import BackgroundTasks, get_background_tasks
from src.common.constants import OrderStatus, PaymentStatus, PaymentSubject, TypeMsg
from src.common.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from src.common.logger import log_debug, log_info, log_warning
from src.core.payments.models import Payment
from src.core.webhooks.models import (
    EVENT_STATUS_MAP,
    WebhookEvent,
    WebhookResult,
    classify_metadata,
)

if TYPE_CHECKING:
    from src.core.notifications.channel import PaymentStatusChannel
    from src.core.orders.service import OrderService
    from src.core.payments.ledger import PaymentLedger
    from src.core.subscriptions.service import SubscriptionService


_SUCCESS_MESSAGES = {
    PaymentSubject.ORDER: "Webhook заказа обработан успешно",
    PaymentSubject.SUBSCRIPTION: "Webhook подписки обработан успешно",
}

_FAILED_STATUSES = frozenset({PaymentStatus.CANCELED, PaymentStatus.FAILED})


class WebhookReconciler:
    """
    Единая точка входа для событий провайдера.

    Порядок:
    1. Тип события -> внутренний статус (неизвестные события пропускаются)
    2. Поиск платежа: по metadata.paymentId, для возврата по ID у провайдера
    3. set_status в журнале платежей
    4. Последствия для заказа или подписки
    5. Уведомление в канал платежа (в фоне)
    """

    def __init__(
        self,
        ledger: "PaymentLedger",
        orders: "OrderService",
        subscriptions: "SubscriptionService",
        channel: "PaymentStatusChannel | None" = None,
        background: BackgroundTasks | None = None,
    ) -> None:
        self._ledger = ledger
        self._orders = orders
        self._subscriptions = subscriptions
        self._channel = channel
        self._background = background or get_background_tasks()

    async def handle(self, event: WebhookEvent) -> WebhookResult:
        """Обрабатывает одно событие. Не бросает исключений на неизвестных данных."""
        event_type = event.event_type
        status = EVENT_STATUS_MAP.get(event_type)
        if status is None:
            await log_info(f"Вебхук {event_type or '<пусто>'} не обрабатывается", type_msg=TypeMsg.DEBUG)
            return WebhookResult(message=f"Событие {event_type} не обрабатывается", success=False)

        if status == PaymentStatus.REFUNDED:
            return await self._handle_refund(event)

        metadata = classify_metadata(event.object.metadata)
        if metadata is None:
            await log_warning(
                f"Вебхук {event_type}: не удалось определить тип платежа",
                extra={"metadata": event.object.metadata},
            )
            return WebhookResult(message="Неизвестный тип платежа", success=False)

        payment = await self._ledger.find(metadata.payment_id)
        if payment is None:
            return await self._not_found(metadata.payment_id, metadata.subject)

        if payment.subject != metadata.subject or payment.subject_id != metadata.subject_id:
            await log_warning(
                f"Вебхук {event_type}: платёж {payment.id} не относится к {metadata.subject.value} "
                f"{metadata.subject_id}",
                extra={"payment_id": payment.id},
            )
            return WebhookResult(
                message="Платёж не соответствует метаданным",
                type=metadata.subject.value,
                payment_id=payment.id,
                success=False,
            )

        return await self._apply(payment, status, provider_id=event.object.id)

    async def simulate_success(self, payment_id: str) -> WebhookResult:
        """
        Ручное подтверждение оплаты (тестовый путь).
        Для не-pending платежа ничего не меняет и возвращает текущий статус.

        Raises:
            NotFoundError: платёж не найден
        """
        payment = await self._ledger.get(payment_id)
        if payment.status != PaymentStatus.PENDING:
            await log_info(
                f"Симуляция оплаты {payment_id}: платёж уже в статусе {payment.status.value}",
                type_msg=TypeMsg.DEBUG,
                extra={"payment_id": payment_id},
            )
            return WebhookResult(
                message="Платёж уже обработан",
                type=payment.subject.value,
                payment_id=payment.id,
                status=payment.status,
            )
        return await self._apply(payment, PaymentStatus.PAID)

    # =========================================================================
    # ВНУТРЕННЕЕ
    # =========================================================================

    async def _handle_refund(self, event: WebhookEvent) -> WebhookResult:
        provider_id = event.provider_payment_id
        payment = await self._ledger.find_by_provider_id(provider_id) if provider_id else None
        if payment is None:
            return await self._not_found(provider_id or "", None)
        return await self._apply(payment, PaymentStatus.REFUNDED)

    async def _not_found(self, payment_id: str, subject: PaymentSubject | None) -> WebhookResult:
        await log_warning(f"Вебхук: платёж {payment_id} не найден", extra={"payment_id": payment_id})
        return WebhookResult(
            message="Платёж не найден",
            type=subject.value if subject else None,
            payment_id=payment_id or None,
            success=False,
        )

    async def _apply(
        self,
        payment: Payment,
        status: PaymentStatus,
        provider_id: str | None = None,
    ) -> WebhookResult:
        try:
            change = await self._ledger.set_status(payment.id, status, provider_id=provider_id)
        except ConflictError as e:
            await log_warning(
                f"Платёж {payment.id} не обновлён: {e.message}",
                extra={"payment_id": payment.id, "provider_id": provider_id},
            )
            return WebhookResult(
                message=e.message,
                type=payment.subject.value,
                payment_id=payment.id,
                status=payment.status,
                success=False,
            )
        current = change.payment

        if status == PaymentStatus.PAID and current.status == PaymentStatus.PAID:
            await self._on_paid(current)
        elif status in _FAILED_STATUSES and current.status in _FAILED_STATUSES:
            await self._on_failed(current)

        self._notify_channel(current)

        return WebhookResult(
            message=_SUCCESS_MESSAGES[current.subject],
            type=current.subject.value,
            payment_id=current.id,
            status=current.status,
        )

    async def _on_paid(self, payment: Payment) -> None:
        if payment.subject == PaymentSubject.ORDER:
            await self._mark_order_paid(payment)
        else:
            await self._activate_subscription(payment)

    async def _mark_order_paid(self, payment: Payment) -> None:
        order_id = payment.subject_id
        try:
            order = await self._orders.get_order(order_id)
        except NotFoundError:
            await log_warning(f"Оплачен платёж {payment.id}, но заказ {order_id} не найден")
            return

        if order.status != OrderStatus.NEW:
            await log_debug(
                f"Заказ {order_id} уже в статусе {order.status.value}, повторная оплата не меняет его",
                extra={"order_id": order_id, "payment_id": payment.id},
            )
            return

        try:
            await self._orders.mark_paid(order_id)
        except InvalidTransitionError as e:
            # Параллельная доставка того же события успела раньше
            await log_debug(f"Заказ {order_id} не переведён в paid: {e.message}", extra={"order_id": order_id})

    async def _activate_subscription(self, payment: Payment) -> None:
        subscription_id = payment.subject_id
        try:
            await self._subscriptions.activate(subscription_id, payment_id=payment.id)
        except InvalidTransitionError as e:
            await log_debug(
                f"Подписка {subscription_id} не активирована повторно: {e.message}",
                extra={"subscription_id": subscription_id},
            )
        except ConflictError as e:
            await log_warning(
                f"Оплачена подписка {subscription_id}, но {e.message.lower()}",
                extra={"subscription_id": subscription_id, "payment_id": payment.id},
            )
        except NotFoundError:
            await log_warning(f"Оплачен платёж {payment.id}, но подписка {subscription_id} не найдена")

    async def _on_failed(self, payment: Payment) -> None:
        # Подписка остаётся в своём статусе, меняется только платёж
        if payment.subject != PaymentSubject.ORDER:
            return

        order_id = payment.subject_id
        try:
            order = await self._orders.get_order(order_id)
            if order.status != OrderStatus.NEW:
                await log_debug(
                    f"Заказ {order_id} в статусе {order.status.value}, отмена по платежу пропущена",
                    extra={"order_id": order_id},
                )
                return
            await self._orders.transition(order_id, OrderStatus.CANCELED)
        except (InvalidTransitionError, NotFoundError) as e:
            await log_warning(
                f"Не удалось отменить заказ {order_id} после отмены платежа: {e.message}",
                extra={"order_id": order_id, "payment_id": payment.id},
            )

    def _notify_channel(self, payment: Payment) -> None:
        if self._channel is None:
            return
        if payment.status == PaymentStatus.PAID:
            coro = self._channel.notify_payment_success(payment.id, payment.subject_id)
        else:
            coro = self._channel.notify_payment_error(payment.id, payment.subject_id, payment.status.value)
        self._background.spawn(coro, name=f"payment-channel-{payment.id}")
