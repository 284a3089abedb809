"""
Домен подписок.
Подписки пользователей и лимиты заказов по ним.
"""

from src.core.subscriptions.limits import SubscriptionLimitsTracker
from src.core.subscriptions.models import OrderLimits, Subscription, SubscriptionCreateDTO, UsageStats
from src.core.subscriptions.repository import SubscriptionRepository
from src.core.subscriptions.service import SubscriptionService

__all__ = [
    "OrderLimits",
    "Subscription",
    "SubscriptionCreateDTO",
    "SubscriptionLimitsTracker",
    "SubscriptionRepository",
    "SubscriptionService",
    "UsageStats",
]
