"""
Роутеры backend-сервиса.
"""

from fastapi import APIRouter

from src.services.backend.routes import ops, orders, payments, schedules, subscriptions, webhooks

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(orders.router)
api_router.include_router(subscriptions.router)
api_router.include_router(schedules.router)
api_router.include_router(payments.router)
api_router.include_router(ops.router)

webhook_router = webhooks.router

__all__ = ["api_router", "webhook_router"]
