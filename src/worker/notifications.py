# src/worker/notifications.py
"""
Воркер доставки Telegram-сообщений.
"""

from __future__ import annotations

from typing import List, Optional

from aiogram import Bot

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, log_warning
from src.infra.event_bus import DomainEvent, EventTypes
from src.shared.events.notification_events import TelegramMessageRequested
from src.worker.base import BaseWorker


class NotificationWorker(BaseWorker):
    """
    Воркер для отправки уведомлений.
    Забирает notification.send из очереди и отправляет сообщение ботом.
    """

    def __init__(self, *args, bot: Optional[Bot] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._bot = bot
        self._owns_bot = bot is None

    @property
    def name(self) -> str:
        return "NotificationWorker"

    @property
    def subscriptions(self) -> List[str]:
        return [EventTypes.NOTIFICATION_SEND]

    async def start(self) -> None:
        """Запускает воркер с инициализацией бота."""
        if self._bot is None:
            from src.config import settings

            if not settings.telegram.BOT_TOKEN:
                await log_warning("BOT_TOKEN не задан, Telegram-уведомления отключены")
                return
            self._bot = Bot(token=settings.telegram.BOT_TOKEN)
        await super().start()

    async def stop(self) -> None:
        await super().stop()
        if self._bot is not None and self._owns_bot:
            await self._bot.session.close()
            self._bot = None

    async def handle_event(self, event: DomainEvent) -> None:
        if event.event_type != EventTypes.NOTIFICATION_SEND:
            return

        message = TelegramMessageRequested.model_validate(event.model_dump())
        await self._send_message(message.chat_id, message.text, parse_mode=message.parse_mode)

    async def _send_message(self, chat_id: int, text: str, parse_mode: str | None = None) -> bool:
        """
        Отправляет сообщение в Telegram.

        Returns:
            True если успешно
        """
        if self._bot is None:
            await log_error("Bot не инициализирован")
            return False

        try:
            await self._bot.send_message(chat_id=chat_id, text=text, parse_mode=parse_mode)
        except Exception as e:
            await log_error(f"Ошибка отправки сообщения: {e}", extra={"chat_id": chat_id})
            return False

        await log_info(f"Сообщение отправлено в чат {chat_id}", type_msg=TypeMsg.DEBUG)
        return True
