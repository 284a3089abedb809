# src/worker/__init__.py
"""
Фоновые воркеры: планировщик периодических задач и доставка уведомлений.
"""

from src.worker.base import BaseWorker
from src.worker.notifications import NotificationWorker
from src.worker.scheduler import PeriodicJob, SchedulerWorker, build_jobs

__all__ = ["BaseWorker", "NotificationWorker", "PeriodicJob", "SchedulerWorker", "build_jobs"]
