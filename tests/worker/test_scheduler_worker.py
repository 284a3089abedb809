# tests/worker/test_scheduler_worker.py
"""
Тесты планировщика периодических задач.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.config.loader import SchedulerSettings
from src.worker.scheduler import PeriodicJob, SchedulerWorker, build_jobs


@pytest.fixture
def job() -> PeriodicJob:
    return PeriodicJob(name="scheduled_orders", interval=60, run=AsyncMock(return_value="ok"))


class TestRunOnce:
    """Тесты одного тика под локом."""

    @pytest.mark.asyncio
    async def test_runs_under_lock(self, job: PeriodicJob, mock_redis: AsyncMock) -> None:
        worker = SchedulerWorker([job], redis=mock_redis, lock_ttl=120)

        assert await worker.run_once(job) is True

        job.run.assert_awaited_once()
        mock_redis.acquire_lock.assert_awaited_once_with("scheduler:scheduled_orders", 120)
        mock_redis.release_lock.assert_awaited_once_with("scheduler:scheduled_orders", "lock-token")

    @pytest.mark.asyncio
    async def test_lock_busy(self, job: PeriodicJob, mock_redis: AsyncMock) -> None:
        """Тик пропускается, пока лок держит другой экземпляр."""
        mock_redis.acquire_lock.return_value = None
        worker = SchedulerWorker([job], redis=mock_redis)

        assert await worker.run_once(job) is False

        job.run.assert_not_awaited()
        mock_redis.release_lock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_unavailable(self, job: PeriodicJob, mock_redis: AsyncMock) -> None:
        mock_redis.acquire_lock.side_effect = ConnectionError("redis down")
        worker = SchedulerWorker([job], redis=mock_redis)

        assert await worker.run_once(job) is False
        job.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_job_error_releases_lock(self, mock_redis: AsyncMock) -> None:
        failing = PeriodicJob(name="overdue_orders", interval=60, run=AsyncMock(side_effect=RuntimeError("boom")))
        worker = SchedulerWorker([failing], redis=mock_redis)

        assert await worker.run_once(failing) is True
        mock_redis.release_lock.assert_awaited_once_with("scheduler:overdue_orders", "lock-token")

    @pytest.mark.asyncio
    async def test_release_error_is_logged(self, job: PeriodicJob, mock_redis: AsyncMock) -> None:
        mock_redis.release_lock.side_effect = ConnectionError("redis down")
        worker = SchedulerWorker([job], redis=mock_redis)

        assert await worker.run_once(job) is True


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, mock_redis: AsyncMock) -> None:
        ticked = asyncio.Event()

        async def tick() -> None:
            ticked.set()

        worker = SchedulerWorker([PeriodicJob(name="tick", interval=3600, run=tick)], redis=mock_redis)

        await worker.start()
        await asyncio.wait_for(ticked.wait(), timeout=1)
        await worker.stop()

        assert worker._tasks == []

    @pytest.mark.asyncio
    async def test_stop_without_start(self, mock_redis: AsyncMock) -> None:
        await SchedulerWorker([], redis=mock_redis).stop()


class TestBuildJobs:
    def test_jobs_and_intervals(self) -> None:
        services = MagicMock()
        scheduler_settings = SchedulerSettings(
            SCHEDULED_ORDERS_INTERVAL=900,
            OVERDUE_CHECK_INTERVAL=120,
            SUBSCRIPTION_EXPIRY_INTERVAL=600,
        )

        jobs = build_jobs(services, scheduler_settings)

        assert [(j.name, j.interval) for j in jobs] == [
            ("scheduled_orders", 900),
            ("overdue_orders", 120),
            ("subscription_expiry", 600),
        ]
        assert jobs[0].run is services.engine.process_due_schedules
        assert jobs[1].run is services.overdue.check_overdue
        assert jobs[2].run is services.subscriptions.expire_ended
