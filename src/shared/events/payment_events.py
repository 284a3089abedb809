# src/shared/events/payment_events.py
"""
События домена платежей.
"""

from __future__ import annotations

from typing import Literal

from src.shared.events.base import DomainEvent


class PaymentStatusChanged(DomainEvent):
    """Событие: статус платежа изменился (вебхук или ручное подтверждение)."""

    event_type: Literal["payment.status_changed"] = "payment.status_changed"

    payment_id: str
    subject: str  # order | subscription
    subject_id: str
    previous_status: str
    status: str
    provider_id: str | None = None
    amount: int = 0
