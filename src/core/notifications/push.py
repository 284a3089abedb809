# src/core/notifications/push.py
"""
Push-уведомления.
Сообщения уходят событием notification.push, доставку на устройство
выполняет транспорт FCM.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.shared.events.notification_events import PushRequested

if TYPE_CHECKING:
    from src.core.users.repository import UserRepository
    from src.infra.event_bus import EventBus


class PushNotifier:
    """Отправка push-уведомлений по токену устройства или по пользователю."""

    def __init__(self, event_bus: "EventBus", users: "UserRepository") -> None:
        self._event_bus = event_bus
        self._users = users

    async def send_to_device(
        self,
        device_token: str,
        title: str,
        body: str,
        payload: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> bool:
        if not device_token:
            return False

        try:
            await self._event_bus.publish(PushRequested(
                device_token=device_token,
                title=title,
                body=body,
                data=payload or {},
                user_id=user_id,
            ))
        except Exception as e:
            await log_error(f"Ошибка постановки push в очередь: {e}", extra={"user_id": user_id})
            return False
        return True

    async def send_to_user(
        self,
        user_id: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        """Push пользователю. Пользователь без токена устройства пропускается."""
        try:
            user = await self._users.get_by_id(user_id)
        except Exception as e:
            await log_error(f"Не удалось получить пользователя {user_id} для push: {e}")
            return False

        if user is None or not user.device_token:
            await log_info(
                f"У пользователя {user_id} нет токена устройства, push пропущен",
                type_msg=TypeMsg.DEBUG,
            )
            return False

        return await self.send_to_device(user.device_token, title, body, data, user_id=user_id)
