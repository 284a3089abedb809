# src/shared/events/notification_events.py
"""
События домена уведомлений.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from src.shared.events.base import DomainEvent


class TelegramMessageRequested(DomainEvent):
    """Событие: отправить сообщение в Telegram (доставляет NotificationWorker)."""

    event_type: Literal["notification.send"] = "notification.send"

    chat_id: int
    text: str
    parse_mode: str | None = None


class PushRequested(DomainEvent):
    """Событие: отправить push на устройство (доставляет транспорт FCM)."""

    event_type: Literal["notification.push"] = "notification.push"

    device_token: str
    title: str
    body: str
    data: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None
