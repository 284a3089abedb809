#!/usr/bin/env python3
# main.py
"""
Главная точка входа приложения.
Запускает HTTP API, планировщик или доставку уведомлений
в зависимости от COMPONENT_MODE или аргумента командной строки.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from src.config import settings
from src.common.logger import get_logger, log_error, log_info, setup_logging
from src.common.constants import TypeMsg
from src.infra.database import init_db, close_db
from src.infra.redis_client import init_redis, close_redis
from src.infra.event_bus import init_event_bus, close_event_bus


# Фоновые компоненты каждого режима; API поднимается отдельно через uvicorn
MODE_COMPONENTS: dict[str, list[str]] = {
    "api": [],
    "scheduler": ["scheduler"],
    "notifications": ["notifications"],
    "all": ["scheduler", "notifications"],
}
VALID_MODES = tuple(MODE_COMPONENTS)

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            get_logger().info(f"Получен сигнал {sig}, останавливаем компоненты")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def init_infrastructure() -> None:
    """Инициализирует все подключения к инфраструктуре."""
    await log_info("Инициализация инфраструктуры...", type_msg=TypeMsg.INFO)
    await init_db()
    await init_redis()
    await init_event_bus()
    await log_info("Инфраструктура инициализирована", type_msg=TypeMsg.INFO)


async def close_infrastructure() -> None:
    """Закрывает все подключения."""
    await log_info("Закрытие подключений...", type_msg=TypeMsg.INFO)
    await close_event_bus()
    await close_redis()
    await close_db()
    await log_info("Подключения закрыты", type_msg=TypeMsg.INFO)


async def run_api() -> None:
    """Запускает HTTP API (FastAPI + uvicorn). Инфраструктуру поднимает lifespan приложения."""
    import uvicorn

    await log_info(f"Запуск API на порту {settings.api.API_PORT}...", type_msg=TypeMsg.INFO)

    config = uvicorn.Config(
        "src.services.backend.app:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_background(components: list[str]) -> None:
    """Запускает фоновые воркеры поверх уже поднятой инфраструктуры."""
    from src.worker.runner import run_workers

    await run_workers(components, init_infra=False)


def resolve_mode(mode: str | None) -> str:
    """Аргумент командной строки, затем COMPONENT_MODE из настроек."""
    if mode is None and len(sys.argv) > 1:
        mode = sys.argv[1]
    if mode is None:
        mode = settings.system.COMPONENT_MODE
    if mode not in VALID_MODES:
        raise ValueError(f"Неизвестный режим '{mode}', допустимые: {', '.join(VALID_MODES)}")
    return mode


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: api, scheduler, notifications или all
    """
    global _running_tasks

    setup_logging()
    setup_signal_handlers()

    mode = resolve_mode(mode)
    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}: запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    if mode == "api":
        await run_api()
        return

    await init_infrastructure()
    try:
        _running_tasks = [asyncio.create_task(run_background(MODE_COMPONENTS[mode]))]
        if mode == "all":
            _running_tasks.append(asyncio.create_task(run_api()))

        await asyncio.gather(*_running_tasks, return_exceptions=True)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
    finally:
        await close_infrastructure()


def run() -> None:
    """Консольная команда courier-orders."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
