# src/core/notifications/service.py
"""
Сервис уведомлений по заказам.
Рассылает push и Telegram-сообщения курьерам и клиентам.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from src.common.constants import TypeMsg
from src.common.localization import get_text
from src.common.logger import log_error, log_info
from src.core.notifications.push import PushNotifier
from src.shared.events.notification_events import TelegramMessageRequested

if TYPE_CHECKING:
    from src.core.orders.models import Order
    from src.core.users.models import User
    from src.core.users.repository import UserRepository
    from src.infra.event_bus import EventBus


def _format_time(order: "Order") -> str:
    if order.scheduled_at is None:
        return "-"
    return order.scheduled_at.strftime("%d.%m.%Y %H:%M")


class NotificationService:
    """
    Сервис уведомлений.

    Публикует события уведомлений в шину событий.
    Фактическая отправка происходит в воркере или транспортном слое.
    Методы не бросают исключений: ошибка уведомления не должна
    ломать операцию с заказом или платежом.
    """

    def __init__(
        self,
        event_bus: "EventBus",
        users: "UserRepository",
        push: PushNotifier | None = None,
    ) -> None:
        self._event_bus = event_bus
        self._users = users
        self._push = push or PushNotifier(event_bus, users)

    async def send_telegram(self, user: "User", text: str) -> bool:
        """Ставит Telegram-сообщение в очередь, если у пользователя есть chat id."""
        if not user.telegram_id:
            return False
        try:
            await self._event_bus.publish(TelegramMessageRequested(chat_id=user.telegram_id, text=text))
        except Exception as e:
            await log_error(f"Ошибка постановки Telegram-сообщения в очередь: {e}", extra={"user_id": user.id})
            return False
        return True

    async def notify_user(self, user: "User", title_key: str, body_key: str, data: dict[str, Any], **kwargs: Any) -> bool:
        """Push + Telegram одному пользователю на его языке."""
        title = get_text(title_key, user.language)
        body = get_text(body_key, user.language, **kwargs)

        sent = False
        if user.device_token:
            sent = await self._push.send_to_device(user.device_token, title, body, data, user_id=user.id)
        if await self.send_telegram(user, body):
            sent = True
        return sent

    async def notify_couriers_new_paid_order(self, order: "Order") -> int:
        """
        Оповещает всех курьеров о новом оплаченном заказе.

        Returns:
            Количество курьеров, которым ушло хотя бы одно уведомление
        """
        try:
            couriers = await self._users.list_couriers()
        except Exception as e:
            await log_error(f"Не удалось получить список курьеров: {e}", extra={"order_id": order.id})
            return 0

        delivered = 0
        for courier in couriers:
            if await self.notify_user(
                courier,
                "ORDER_PAID_FOR_COURIERS_TITLE",
                "ORDER_PAID_FOR_COURIERS",
                {"order_id": order.id, "type": "order_paid_ready"},
                address=order.address,
                scheduled_at=_format_time(order),
            ):
                delivered += 1

        await log_info(
            f"Оплаченный заказ {order.id}: уведомлено курьеров {delivered}/{len(couriers)}",
            type_msg=TypeMsg.INFO,
            extra={"order_id": order.id},
        )
        return delivered

    async def notify_order_reassigned(self, order: "Order", old_courier_id: str | None, new_courier_id: str) -> None:
        if old_courier_id and old_courier_id != new_courier_id:
            await self._notify_by_id(
                old_courier_id,
                "ORDER_REASSIGNED_TITLE",
                "ORDER_REASSIGNED_FROM",
                {"order_id": order.id, "type": "order_reassigned"},
                address=order.address,
            )
        await self._notify_by_id(
            new_courier_id,
            "ORDER_REASSIGNED_TITLE",
            "ORDER_REASSIGNED_TO",
            {"order_id": order.id, "type": "order_assigned"},
            address=order.address,
        )

    async def notify_order_overdue(self, order: "Order", minutes: int) -> bool:
        if not order.courier_id:
            return False
        return await self._notify_by_id(
            order.courier_id,
            "ORDER_OVERDUE_TITLE",
            "ORDER_OVERDUE",
            {"order_id": order.id, "type": "order_overdue", "minutes": minutes},
            address=order.address,
            minutes=minutes,
        )

    async def notify_customer_status(self, order: "Order") -> bool:
        return await self._notify_by_id(
            order.customer_id,
            "ORDER_STATUS_CHANGED_TITLE",
            "ORDER_STATUS_CHANGED",
            {"order_id": order.id, "type": "order_status", "status": order.status.value},
            address=order.address,
            status=order.status.value,
        )

    async def notify_scheduled_order_created(self, order: "Order") -> bool:
        return await self._notify_by_id(
            order.customer_id,
            "SCHEDULED_ORDER_CREATED_TITLE",
            "SCHEDULED_ORDER_CREATED",
            {"order_id": order.id, "type": "scheduled_order_created"},
            scheduled_at=_format_time(order),
        )

    async def _notify_by_id(
        self,
        user_id: str,
        title_key: str,
        body_key: str,
        data: dict[str, Any],
        **kwargs: Any,
    ) -> bool:
        try:
            user = await self._users.get_by_id(user_id)
        except Exception as e:
            await log_error(f"Не удалось получить пользователя {user_id} для уведомления: {e}")
            return False
        if user is None:
            return False
        return await self.notify_user(user, title_key, body_key, data, **kwargs)
