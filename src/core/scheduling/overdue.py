# src/core/scheduling/overdue.py
"""
Контроль просроченных заказов.
Курьер получает одно уведомление на заказ: отметка overdue_notified_at
ставится условным UPDATE, поэтому параллельные проверки не дублируют его.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Optional

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.common.utils import utc_now
from src.shared.events.order_events import OrderOverdue

if TYPE_CHECKING:
    from src.core.notifications.service import NotificationService
    from src.core.orders.repository import OrderRepository
    from src.infra.event_bus import EventBus


class OverdueMonitor:
    """Находит назначенные заказы, которые курьер не выполнил вовремя."""

    def __init__(
        self,
        orders: "OrderRepository",
        notifier: "NotificationService | None" = None,
        event_bus: "EventBus | None" = None,
        threshold_minutes: int = 10,
    ) -> None:
        self._orders = orders
        self._notifier = notifier
        self._event_bus = event_bus
        self._threshold = threshold_minutes

    async def check_overdue(self, now: Optional[datetime] = None) -> int:
        """
        Один проход проверки.

        Returns:
            Количество заказов, по которым ушло уведомление
        """
        now = now or utc_now()
        candidates = await self._orders.list_overdue_candidates(now - timedelta(minutes=self._threshold))

        notified = 0
        for order in candidates:
            minutes = order.minutes_overdue(now)
            try:
                marked = await self._orders.mark_overdue_notified(order.id, minutes, now)
            except Exception as e:
                await log_error(f"Не удалось отметить просрочку заказа {order.id}: {e}", extra={"order_id": order.id})
                continue
            if not marked:
                continue

            notified += 1
            await log_info(
                f"Заказ {order.id} просрочен на {minutes} мин., курьер {order.courier_id}",
                type_msg=TypeMsg.WARNING,
                extra={"order_id": order.id, "courier_id": order.courier_id},
            )
            if self._notifier is not None:
                await self._notifier.notify_order_overdue(order, minutes)
            if self._event_bus is not None:
                await self._event_bus.publish(OrderOverdue(
                    order_id=order.id,
                    courier_id=order.courier_id,
                    overdue_minutes=minutes,
                ))

        return notified
