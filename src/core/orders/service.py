# src/core/orders/service.py
"""
Сервис для работы с заказами.
Координирует бизнес-логику заказов: создание, переходы статусов,
операции курьера и оплату.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Optional

from src.common.background import BackgroundTasks, get_background_tasks
from src.common.constants import (
    ExpiryReason,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentSubject,
    TypeMsg,
    UserRole,
)
from src.common.exceptions import (
    BadRequestError,
    CourierMismatchError,
    InvalidTransitionError,
    NotFoundError,
)
from src.common.logger import log_info
from src.common.utils import ensure_utc, utc_now
from src.core.orders.models import Order, OrderCreateDTO, OrderView
from src.core.orders.repository import OrderRepository
from src.core.orders.state_machine import OrderStateMachine
from src.core.payments.models import Payment
from src.core.users.models import User
from src.core.users.repository import UserRepository
from src.shared.events.order_events import OrderCreated, OrderPaid, OrderStatusChanged

if TYPE_CHECKING:
    from src.config.loader import OrderSettings
    from src.core.notifications.service import NotificationService
    from src.core.payments.ledger import PaymentLedger
    from src.core.subscriptions.limits import SubscriptionLimitsTracker
    from src.core.subscriptions.models import OrderLimits
    from src.infra.database import DatabaseManager, Executor
    from src.infra.event_bus import EventBus


# Статусы, о смене на которые уведомляется клиент
_CUSTOMER_VISIBLE = frozenset({
    OrderStatus.ASSIGNED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.DONE,
    OrderStatus.CANCELED,
})


def _limits_error(limits: "OrderLimits") -> BadRequestError:
    if limits.is_expired:
        reason = "истечение времени" if limits.expiry_reason == ExpiryReason.TIME else "исчерпание лимитов"
        message = f"Подписка завершена по причине: {reason}"
    elif limits.subscription_id is None:
        message = "У вас нет активной подписки для оплаты через подписку"
    else:
        message = "Превышен лимит заказов для вашей подписки"
    return BadRequestError(
        message,
        details={
            "remaining_orders": limits.remaining_orders,
            "total_limit": limits.total_limit,
            "expiry_reason": limits.expiry_reason.value if limits.expiry_reason else None,
        },
    )


class OrderService:
    """
    Сервис заказов.
    Управляет жизненным циклом заказов.

    Все смены статуса проходят через OrderStateMachine. Уведомления
    отправляются в фоне после успешного сохранения.
    """

    def __init__(
        self,
        db: "DatabaseManager",
        ledger: "PaymentLedger",
        limits: "SubscriptionLimitsTracker",
        notifier: "NotificationService | None" = None,
        event_bus: "EventBus | None" = None,
        users: UserRepository | None = None,
        repository: OrderRepository | None = None,
        order_settings: "OrderSettings | None" = None,
        background: BackgroundTasks | None = None,
    ) -> None:
        if order_settings is None:
            from src.config import settings
            order_settings = settings.orders

        self._db = db
        self._ledger = ledger
        self._limits = limits
        self._notifier = notifier
        self._event_bus = event_bus
        self._users = users or UserRepository(db)
        self._settings = order_settings
        self._background = background or get_background_tasks()
        self.repository = repository or OrderRepository(db)

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    async def create(self, dto: OrderCreateDTO) -> OrderView:
        """
        Создаёт заказ.

        Обычный заказ создаётся в статусе new с ожидающим платежом и ссылкой
        на оплату. Заказ с оплатой подпиской списывает слот подписки и сразу
        становится paid с нулевым оплаченным платежом.

        Raises:
            NotFoundError: клиент не найден
            BadRequestError: оплата подпиской без доступного лимита
        """
        customer = await self._users.get_by_id(dto.customer_id)
        if customer is None:
            raise NotFoundError("Клиент не найден", details={"customer_id": dto.customer_id})

        scheduled_at = ensure_utc(dto.scheduled_at) or (
            utc_now() + timedelta(minutes=self._settings.DEFAULT_SCHEDULE_OFFSET_MINUTES)
        )
        order = Order(
            customer_id=dto.customer_id,
            address=dto.address,
            address_details=dto.address_details,
            description=dto.description,
            notes=dto.notes,
            price=dto.price,
            number_packages=dto.number_packages,
            scheduled_at=scheduled_at,
        )

        if dto.payment_method == PaymentMethod.SUBSCRIPTION:
            async with self._db.transaction() as conn:
                limits = await self._limits.reserve_order_slot(dto.customer_id, conn=conn)
                if limits.can_create_order:
                    payment = await self.insert_prepaid(order, conn=conn)

            if not limits.can_create_order:
                raise _limits_error(limits)

            await self._announce_created(order)
            await self.announce_paid(order)
        else:
            async with self._db.transaction() as conn:
                await self.repository.create(order, conn=conn)
                payment = await self._ledger.open(
                    order.id,
                    order.price,
                    PaymentSubject.ORDER,
                    method=dto.payment_method,
                    conn=conn,
                )
                if payment.payment_url:
                    await self.repository.set_payment_url(order.id, payment.payment_url, conn=conn)
                    order.payment_url = payment.payment_url

            await self._announce_created(order)

        return self._build_view(order, [payment])

    async def insert_prepaid(self, order: Order, *, conn: "Executor") -> Payment:
        """
        Сохраняет заказ сразу оплаченным и открывает нулевой платёж подпиской.
        Вызывается внутри транзакции, в которой списан слот подписки.
        """
        order.status = OrderStatus.PAID
        await self.repository.create(order, conn=conn)
        return await self._ledger.open(
            order.id,
            0,
            PaymentSubject.ORDER,
            method=PaymentMethod.SUBSCRIPTION,
            status=PaymentStatus.PAID,
            conn=conn,
        )

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_order(self, order_id: str) -> Order:
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Заказ не найден", details={"order_id": order_id})
        return order

    async def get(self, order_id: str) -> OrderView:
        """Заказ с платежами и признаком просрочки."""
        order = await self.get_order(order_id)
        payments = await self._ledger.list_for_order(order_id)
        return self._build_view(order, payments)

    async def list_for_customer(self, customer_id: str) -> list[Order]:
        return await self.repository.list_by_customer(customer_id)

    async def list_for_courier(self, courier_id: str) -> list[Order]:
        return await self.repository.list_by_courier(courier_id)

    async def list_available(self) -> list[Order]:
        return await self.repository.list_available()

    def _build_view(self, order: Order, payments: list[Payment]) -> OrderView:
        minutes = 0 if order.is_terminal else order.minutes_overdue(utc_now())
        return OrderView(
            order=order,
            payments=payments,
            is_overdue=minutes > 0,
            overdue_minutes=minutes,
        )

    # =========================================================================
    # ПЕРЕХОДЫ СТАТУСОВ
    # =========================================================================

    async def transition(
        self,
        order_id: str,
        target: OrderStatus,
        courier_id: Optional[str] = None,
    ) -> Order:
        """
        Переводит заказ в target.

        Raises:
            NotFoundError: заказ или курьер не найден
            InvalidTransitionError: переход не разрешён
            BadRequestError: для assigned не указан курьер или пользователь не курьер
        """
        order = await self.get_order(order_id)
        return await self._apply(order, target, courier_id)

    async def mark_paid(self, order_id: str) -> Order:
        """new -> paid после успешной оплаты."""
        return await self.transition(order_id, OrderStatus.PAID)

    async def remove(self, order_id: str) -> None:
        """
        Удаляет заказ.

        Raises:
            NotFoundError: заказ не найден
            BadRequestError: заказ выполняется или выполнен
        """
        order = await self.get_order(order_id)
        if not OrderStateMachine.can_delete(order.status):
            raise BadRequestError(
                "Нельзя удалить заказ в процессе выполнения или завершенный",
                details={"order_id": order_id, "status": order.status.value},
            )
        await self.repository.delete(order_id)
        await log_info(f"Заказ {order_id} удалён", type_msg=TypeMsg.INFO, extra={"order_id": order_id})

    async def _apply(self, order: Order, target: OrderStatus, courier_id: Optional[str] = None) -> Order:
        OrderStateMachine.ensure_transition(order.status, target)

        now = utc_now()
        assigned_at = None
        overdue_minutes = None
        if target == OrderStatus.ASSIGNED:
            if not courier_id:
                raise BadRequestError(
                    "Необходимо указать ID курьера для назначения заказа",
                    details={"order_id": order.id},
                )
            await self._get_courier(courier_id)
            assigned_at = now
            overdue_minutes = order.minutes_overdue(now) or None

        updated = await self.repository.update_status(
            order.id,
            target,
            expected_status=order.status,
            courier_id=courier_id if target == OrderStatus.ASSIGNED else None,
            assigned_at=assigned_at,
            overdue_minutes=overdue_minutes,
        )
        if updated is None:
            # Заказ изменился между чтением и записью
            current = await self.get_order(order.id)
            raise InvalidTransitionError(str(current.status), str(target), entity="order")

        await log_info(
            f"Заказ {order.id}: {order.status.value} -> {target.value}",
            type_msg=TypeMsg.INFO,
            extra={"order_id": order.id, "courier_id": updated.courier_id},
        )
        await self._after_transition(order.status, updated)
        return updated

    async def _after_transition(self, previous: OrderStatus, order: Order) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(OrderStatusChanged(
                order_id=order.id,
                customer_id=order.customer_id,
                courier_id=order.courier_id,
                previous_status=previous.value,
                status=order.status.value,
            ))

        if order.status == OrderStatus.PAID:
            await self.announce_paid(order)
        elif order.status in _CUSTOMER_VISIBLE and self._notifier is not None:
            self._background.spawn(
                self._notifier.notify_customer_status(order),
                name=f"notify-status-{order.id}",
            )

    async def _announce_created(self, order: Order) -> None:
        await log_info(
            f"Создан заказ {order.id} ({order.status.value}) для {order.customer_id}",
            type_msg=TypeMsg.INFO,
            extra={"order_id": order.id, "schedule_id": order.schedule_id},
        )
        if self._event_bus is not None:
            await self._event_bus.publish(OrderCreated(
                order_id=order.id,
                customer_id=order.customer_id,
                status=order.status.value,
                price=order.price,
                scheduled_at=order.scheduled_at,
                schedule_id=order.schedule_id,
            ))

    async def announce_paid(self, order: Order) -> None:
        """Событие order.paid и рассылка курьерам в фоне."""
        if self._event_bus is not None:
            await self._event_bus.publish(OrderPaid(
                order_id=order.id,
                customer_id=order.customer_id,
                address=order.address,
                scheduled_at=order.scheduled_at,
            ))
        if self._notifier is not None:
            self._background.spawn(
                self._notifier.notify_couriers_new_paid_order(order),
                name=f"notify-paid-{order.id}",
            )

    # =========================================================================
    # ОПЕРАЦИИ КУРЬЕРА
    # =========================================================================

    async def take(self, order_id: str, courier_id: str) -> Order:
        """Курьер берёт оплаченный заказ без курьера."""
        order = await self.get_order(order_id)

        if order.courier_id:
            raise BadRequestError(
                "Заказ уже назначен другому курьеру. Используйте переназначение",
                details={"order_id": order_id},
            )
        if order.status != OrderStatus.PAID:
            raise BadRequestError(
                "Можно взять только оплаченные заказы",
                details={"order_id": order_id, "status": order.status.value},
            )

        return await self._apply(order, OrderStatus.ASSIGNED, courier_id)

    async def start(self, order_id: str, courier_id: str) -> Order:
        order = await self.get_order(order_id)
        self._ensure_owner(order, courier_id)
        return await self._apply(order, OrderStatus.IN_PROGRESS)

    async def complete(self, order_id: str, courier_id: str) -> Order:
        order = await self.get_order(order_id)
        self._ensure_owner(order, courier_id)
        return await self._apply(order, OrderStatus.DONE)

    async def cancel(self, order_id: str, courier_id: Optional[str] = None) -> Order:
        """
        Отмена заказа. Возможна только заранее: больше чем за
        CANCEL_MIN_LEAD_MINUTES до scheduled_at.
        Без courier_id отменяет клиент или администратор.
        """
        order = await self.get_order(order_id)

        if OrderStateMachine.is_terminal(order.status):
            raise InvalidTransitionError(str(order.status), str(OrderStatus.CANCELED), entity="order")

        scheduled_at = ensure_utc(order.scheduled_at)
        if scheduled_at is not None:
            lead = timedelta(minutes=self._settings.CANCEL_MIN_LEAD_MINUTES)
            if scheduled_at - utc_now() <= lead:
                raise BadRequestError(
                    f"Заказ можно отменить только более чем за {self._settings.CANCEL_MIN_LEAD_MINUTES} мин "
                    "до запланированного времени",
                    details={"order_id": order_id},
                )

        if courier_id is not None and order.courier_id and order.courier_id != courier_id:
            raise CourierMismatchError("Заказ назначен другому курьеру", details={"order_id": order_id})

        return await self._apply(order, OrderStatus.CANCELED)

    async def reassign(self, order_id: str, new_courier_id: str) -> Order:
        """
        Передаёт заказ другому курьеру. Статус не меняется,
        оба курьера получают уведомление.
        """
        order = await self.get_order(order_id)
        if order.status not in (OrderStatus.ASSIGNED, OrderStatus.IN_PROGRESS):
            raise BadRequestError(
                "Переназначить можно только назначенный или выполняемый заказ",
                details={"order_id": order_id, "status": order.status.value},
            )

        await self._get_courier(new_courier_id)
        old_courier_id = order.courier_id

        updated = await self.repository.set_courier(order_id, new_courier_id, utc_now())
        if updated is None:
            raise NotFoundError("Заказ не найден", details={"order_id": order_id})

        await log_info(
            f"Заказ {order_id} переназначен: {old_courier_id} -> {new_courier_id}",
            type_msg=TypeMsg.INFO,
            extra={"order_id": order_id},
        )
        if self._notifier is not None:
            self._background.spawn(
                self._notifier.notify_order_reassigned(updated, old_courier_id, new_courier_id),
                name=f"notify-reassign-{order_id}",
            )
        return updated

    @staticmethod
    def _ensure_owner(order: Order, courier_id: str) -> None:
        if order.courier_id != courier_id:
            raise CourierMismatchError(
                "Заказ назначен другому курьеру",
                details={"order_id": order.id, "courier_id": courier_id},
            )

    async def _get_courier(self, courier_id: str) -> User:
        courier = await self._users.get_by_id(courier_id)
        if courier is None:
            raise NotFoundError("Курьер не найден", details={"courier_id": courier_id})
        if not courier.has_role(UserRole.COURIER):
            raise BadRequestError("Пользователь не является курьером", details={"courier_id": courier_id})
        return courier
