# src/services/backend/app.py
"""
FastAPI приложение backend-сервиса.

Endpoints:
- GET  /health - состояние сервиса и зависимостей
- /api/v1/orders... - заказы и операции курьера
- /api/v1/subscriptions... - подписки и лимиты
- /api/v1/schedules... - расписания регулярных заказов
- POST /api/v1/payments/{id}/simulate - ручное подтверждение оплаты
- POST /api/v1/ops/scheduled-orders/run - проход по расписаниям
- POST /webhooks/yookassa - вебхук провайдера
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.common.constants import TypeMsg
from src.common.exceptions import DomainError
from src.common.logger import log_info, log_warning, setup_logging
from src.config import settings
from src.services.backend.dependencies import cleanup_dependencies, init_dependencies
from src.services.backend.routes import api_router, webhook_router
from src.shared.models.common import ErrorResponse, HealthStatus


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    from src.infra.database import close_db, get_db, init_db
    from src.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
    from src.infra.redis_client import close_redis, get_redis, init_redis

    setup_logging()
    await log_info("Запуск backend-сервиса...", type_msg=TypeMsg.INFO)

    await init_db()
    await init_redis()
    await init_event_bus()
    await init_dependencies(get_db(), get_redis(), get_event_bus())

    yield

    await log_info("Остановка backend-сервиса...", type_msg=TypeMsg.INFO)
    await cleanup_dependencies()
    await close_event_bus()
    await close_redis()
    await close_db()


# === APP ===

def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        use_lifespan: False в тестах, когда сервисы подставляются вручную
    """
    application = FastAPI(
        title="Courier Orders Backend",
        description="Заказы, платежи, подписки и регулярные заказы.",
        version=settings.system.VERSION,
        lifespan=lifespan if use_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    application.add_exception_handler(DomainError, domain_error_handler)
    application.include_router(api_router)
    application.include_router(webhook_router)
    application.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthStatus,
        tags=["Health"],
    )
    return application


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """DomainError -> ErrorResponse с кодом класса ошибки."""
    await log_warning(
        f"{request.method} {request.url.path}: {exc.error_code}: {exc.message}",
        extra={"details": exc.details},
    )
    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details or None)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


# === HEALTH CHECK ===

async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса и его зависимостей."""
    from src.infra.database import get_db
    from src.infra.event_bus import get_event_bus
    from src.infra.redis_client import get_redis

    db_ok = get_db().is_connected and await get_db().health_check()
    redis_ok = get_redis().is_connected and await get_redis().health_check()
    bus_ok = await get_event_bus().health_check()

    dependencies = {
        "postgres": "healthy" if db_ok else "unhealthy",
        "redis": "healthy" if redis_ok else "unhealthy",
        "rabbitmq": "healthy" if bus_ok else "unhealthy",
    }
    if not db_ok:
        overall = "unhealthy"
    elif not (redis_ok and bus_ok):
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthStatus(
        service="backend",
        status=overall,
        version=settings.system.VERSION,
        dependencies=dependencies,
    )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.services.backend.app:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        reload=settings.system.DEBUG,
    )
