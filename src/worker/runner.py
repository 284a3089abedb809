# src/worker/runner.py
"""
Запускалка фоновых компонентов: планировщик и доставка уведомлений.
"""

from __future__ import annotations

import asyncio
from typing import List, Protocol

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.infra.database import close_db, get_db, init_db
from src.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from src.infra.redis_client import close_redis, get_redis, init_redis
from src.worker.notifications import NotificationWorker
from src.worker.scheduler import SchedulerWorker, build_jobs


class Worker(Protocol):
    name: str

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


def create_scheduler() -> SchedulerWorker:
    """Планировщик поверх графа сервисов процесса."""
    from src.config import settings
    from src.services.backend.dependencies import build_services

    services = build_services(get_db(), get_redis(), get_event_bus())
    return SchedulerWorker(
        build_jobs(services, settings.scheduler),
        lock_ttl=settings.scheduler.SCHEDULER_LOCK_TTL,
    )


async def run_workers(components: List[str], init_infra: bool = True) -> None:
    """
    Запускает фоновые компоненты и держит их до отмены.

    Args:
        components: "scheduler" и/или "notifications"
        init_infra: False, если инфраструктура уже поднята (main.py)
    """
    if init_infra:
        await log_info("Инициализация инфраструктуры для воркеров...", type_msg=TypeMsg.DEBUG)
        await init_db()
        await init_redis()
        await init_event_bus()

    workers: List[Worker] = []
    if "scheduler" in components:
        workers.append(create_scheduler())
    if "notifications" in components:
        workers.append(NotificationWorker())

    try:
        for worker in workers:
            await worker.start()

        await log_info(f"Запущено воркеров: {len(workers)}", type_msg=TypeMsg.INFO)

        # Ждём отмены (Ctrl+C / SIGTERM)
        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
    finally:
        for worker in workers:
            await worker.stop()

        if init_infra:
            await close_event_bus()
            await close_redis()
            await close_db()

        await log_info("Воркеры остановлены", type_msg=TypeMsg.INFO)


def main() -> None:
    """Точка входа."""
    try:
        asyncio.run(run_workers(["scheduler", "notifications"]))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
