# src/services/backend/routes/webhooks.py
"""
Вебхуки платёжного провайдера (YooKassa).
"""

from __future__ import annotations

import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from src.common.logger import log_warning
from src.core.webhooks import WebhookEvent, WebhookReconciler, WebhookResult
from src.services.backend.dependencies import get_reconciler

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/yookassa", response_model=WebhookResult, summary="Вебхук YooKassa")
async def yookassa_webhook(
    request: Request,
    reconciler: Annotated[WebhookReconciler, Depends(get_reconciler)],
) -> WebhookResult:
    """
    Отвечает 200 на любое распознаваемое событие, включая повторы.
    400 только для тела, которое не удалось разобрать.
    """
    try:
        event = WebhookEvent.model_validate(await request.json())
    except (json.JSONDecodeError, ValidationError) as e:
        await log_warning(f"Некорректное тело вебхука: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Некорректное тело вебхука")

    return await reconciler.handle(event)
