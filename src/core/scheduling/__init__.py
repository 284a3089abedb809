"""
Регулярные заказы.
Расписания, расчёт дат, создание заказов по расписанию и контроль просрочек.
"""

from src.core.scheduling.engine import ScheduledOrderEngine
from src.core.scheduling.models import (
    ScheduleCreateDTO,
    ScheduleDefinition,
    ScheduleRunReport,
    ScheduleUpdateDTO,
)
from src.core.scheduling.overdue import OverdueMonitor
from src.core.scheduling.repository import ScheduleRepository
from src.core.scheduling.service import ScheduleService

__all__ = [
    "OverdueMonitor",
    "ScheduleCreateDTO",
    "ScheduleDefinition",
    "ScheduleRepository",
    "ScheduleRunReport",
    "ScheduleService",
    "ScheduleUpdateDTO",
    "ScheduledOrderEngine",
]
