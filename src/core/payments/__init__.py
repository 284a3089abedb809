"""
Домен платежей: единый журнал платежей заказов и подписок.
"""

from src.core.payments.ledger import PaymentLedger
from src.core.payments.models import Payment, PaymentStatusChange
from src.core.payments.repository import PaymentRepository

__all__ = [
    "Payment",
    "PaymentLedger",
    "PaymentRepository",
    "PaymentStatusChange",
]
