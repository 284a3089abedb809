"""
Домен уведомлений.
Realtime-канал оплаты, push и Telegram-рассылки.
"""

from src.core.notifications.channel import PaymentStatusChannel, payment_channel
from src.core.notifications.push import PushNotifier
from src.core.notifications.service import NotificationService

__all__ = [
    "NotificationService",
    "PaymentStatusChannel",
    "PushNotifier",
    "payment_channel",
]
