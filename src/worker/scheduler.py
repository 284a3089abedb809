# src/worker/scheduler.py
"""
Планировщик периодических задач.

Каждая задача крутится в своём цикле: тик, затем пауза interval секунд,
поэтому в одном процессе тики задачи не пересекаются. Между процессами
тик защищён локом в Redis (SET NX EX): пока лок держит другой экземпляр,
тик пропускается.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional

from src.common.constants import TypeMsg
from src.common.logger import log_debug, log_error, log_info
from src.infra.redis_client import RedisClient, get_redis

if TYPE_CHECKING:
    from src.config.loader import SchedulerSettings
    from src.services.backend.dependencies import Services


@dataclass
class PeriodicJob:
    """Периодическая задача: имя (оно же имя лока), интервал и корутина тика."""

    name: str
    interval: int
    run: Callable[[], Awaitable[Any]]


def build_jobs(services: "Services", scheduler_settings: "SchedulerSettings") -> List[PeriodicJob]:
    """Задачи планировщика: регулярные заказы, просрочки, завершение подписок."""
    return [
        PeriodicJob(
            name="scheduled_orders",
            interval=scheduler_settings.SCHEDULED_ORDERS_INTERVAL,
            run=services.engine.process_due_schedules,
        ),
        PeriodicJob(
            name="overdue_orders",
            interval=scheduler_settings.OVERDUE_CHECK_INTERVAL,
            run=services.overdue.check_overdue,
        ),
        PeriodicJob(
            name="subscription_expiry",
            interval=scheduler_settings.SUBSCRIPTION_EXPIRY_INTERVAL,
            run=services.subscriptions.expire_ended,
        ),
    ]


class SchedulerWorker:
    """Запускает периодические задачи до остановки."""

    def __init__(
        self,
        jobs: List[PeriodicJob],
        redis: Optional[RedisClient] = None,
        lock_ttl: int = 1800,
    ) -> None:
        self.jobs = jobs
        self.redis = redis or get_redis()
        self._lock_ttl = lock_ttl
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    def name(self) -> str:
        return "SchedulerWorker"

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for job in self.jobs:
            self._tasks.append(asyncio.create_task(self._loop(job), name=f"job-{job.name}"))
        await log_info(
            f"Планировщик запущен: {', '.join(f'{j.name}/{j.interval}s' for j in self.jobs)}",
            type_msg=TypeMsg.INFO,
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await log_info("Планировщик остановлен", type_msg=TypeMsg.INFO)

    async def _loop(self, job: PeriodicJob) -> None:
        while self._running:
            await self.run_once(job)
            await asyncio.sleep(job.interval)

    async def run_once(self, job: PeriodicJob) -> bool:
        """
        Один тик задачи под локом.

        Returns:
            False, если лок занят другим экземпляром или Redis недоступен
        """
        lock_name = f"scheduler:{job.name}"
        try:
            token = await self.redis.acquire_lock(lock_name, self._lock_ttl)
        except Exception as e:
            await log_error(f"Не удалось взять лок {lock_name}: {e}")
            return False

        if token is None:
            await log_debug(f"Тик {job.name} пропущен: выполняется другим экземпляром")
            return False

        try:
            result = await job.run()
            await log_debug(f"Тик {job.name} завершён: {result}")
        except Exception as e:
            await log_error(f"Ошибка в периодической задаче {job.name}: {e}", exc_info=True)
        finally:
            try:
                await self.redis.release_lock(lock_name, token)
            except Exception as e:
                await log_error(f"Не удалось снять лок {lock_name}: {e}")
        return True
