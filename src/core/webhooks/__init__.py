"""
Вебхуки платёжного провайдера.
"""

from src.core.webhooks.models import (
    EVENT_STATUS_MAP,
    OrderPaymentMetadata,
    SubscriptionPaymentMetadata,
    WebhookEvent,
    WebhookObject,
    WebhookResult,
    classify_metadata,
)
from src.core.webhooks.reconciler import WebhookReconciler

__all__ = [
    "EVENT_STATUS_MAP",
    "OrderPaymentMetadata",
    "SubscriptionPaymentMetadata",
    "WebhookEvent",
    "WebhookObject",
    "WebhookReconciler",
    "WebhookResult",
    "classify_metadata",
]
