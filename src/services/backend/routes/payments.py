# src/services/backend/routes/payments.py
"""
Платежи: чтение и ручное подтверждение оплаты.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from src.core.payments import Payment, PaymentLedger
from src.core.webhooks import WebhookReconciler, WebhookResult
from src.services.backend.dependencies import get_ledger, get_reconciler
from src.shared.models.common import ErrorResponse

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get(
    "/{payment_id}",
    response_model=Payment,
    responses={404: {"model": ErrorResponse}},
    summary="Получить платёж",
)
async def get_payment(
    payment_id: str,
    ledger: Annotated[PaymentLedger, Depends(get_ledger)],
) -> Payment:
    return await ledger.get(payment_id)


@router.post(
    "/{payment_id}/simulate",
    response_model=WebhookResult,
    responses={404: {"model": ErrorResponse}},
    summary="Симулировать успешную оплату",
)
async def simulate_payment(
    payment_id: str,
    reconciler: Annotated[WebhookReconciler, Depends(get_reconciler)],
) -> WebhookResult:
    """
    Тот же путь, что и вебхук `payment.succeeded`.
    Повторный вызов для уже оплаченного платежа ничего не меняет.
    """
    return await reconciler.simulate_success(payment_id)
