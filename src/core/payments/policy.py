# src/core/payments/policy.py
"""
Правило монотонности статусов платежа.

Порядок: pending -> processing -> waiting_for_capture -> терминальные.
Из терминальных есть один путь: paid -> refunded.
"""

from __future__ import annotations

from src.common.constants import PaymentStatus


TERMINAL_STATUSES: frozenset[PaymentStatus] = frozenset({
    PaymentStatus.PAID,
    PaymentStatus.FAILED,
    PaymentStatus.REFUNDED,
    PaymentStatus.CANCELED,
})

_RANK: dict[PaymentStatus, int] = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.PROCESSING: 1,
    PaymentStatus.WAITING_FOR_CAPTURE: 2,
}


def is_terminal(status: PaymentStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_apply(current: PaymentStatus, target: PaymentStatus) -> bool:
    """
    Можно ли перевести платёж из current в target.
    Повтор того же статуса сюда не попадает: это no-op на уровне журнала.
    """
    if current == target:
        return False
    if current in TERMINAL_STATUSES:
        return current == PaymentStatus.PAID and target == PaymentStatus.REFUNDED
    if target in TERMINAL_STATUSES:
        return True
    return _RANK[target] > _RANK[current]
