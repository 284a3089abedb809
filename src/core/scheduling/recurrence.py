# src/core/scheduling/recurrence.py
"""
Правила повторения расписаний.

Все сравнения идут по календарным дням UTC. День недели: 0 = воскресенье,
1 = понедельник, ..., 6 = суббота.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

from src.common.constants import ScheduleFrequency
from src.common.utils import ensure_utc
from src.core.scheduling.models import ScheduleDefinition

DEFAULT_ORDER_HOUR_UTC = 10

_FREQUENCY_DAYS: dict[ScheduleFrequency, int] = {
    ScheduleFrequency.DAILY: 1,
    ScheduleFrequency.EVERY_OTHER_DAY: 2,
    ScheduleFrequency.WEEKLY: 7,
}


def utc_weekday(moment: datetime) -> int:
    """День недели в UTC, 0 = воскресенье."""
    return ensure_utc(moment).isoweekday() % 7


def days_between(earlier: datetime, later: datetime) -> int:
    """Сколько календарных дней UTC между датами (время суток не учитывается)."""
    return (ensure_utc(later).date() - ensure_utc(earlier).date()).days


def is_in_window(schedule: ScheduleDefinition, now: datetime) -> bool:
    """Расписание уже началось и ещё не закончилось."""
    if now < ensure_utc(schedule.start_date):
        return False
    if schedule.end_date is not None and now > ensure_utc(schedule.end_date):
        return False
    return True


def is_due(schedule: ScheduleDefinition, now: datetime) -> bool:
    """
    Пора ли создавать заказ.

    Зависит только от last_created_at, поэтому повтор прохода после
    сохранения last_created_at заказ не дублирует.
    """
    if schedule.last_created_at is None:
        return True

    elapsed = days_between(schedule.last_created_at, now)

    if schedule.frequency == ScheduleFrequency.CUSTOM:
        if not schedule.days_of_week:
            return False
        return utc_weekday(now) in schedule.days_of_week and elapsed > 0

    return elapsed >= _FREQUENCY_DAYS[schedule.frequency]


def _next_custom_date(now: datetime, days_of_week: list[int]) -> datetime:
    current = utc_weekday(now)
    ordered = sorted(days_of_week)
    for day in ordered:
        if day > current:
            return now + timedelta(days=day - current)
    return now + timedelta(days=7 - current + ordered[0])


def next_order_time(
    schedule: ScheduleDefinition,
    now: datetime,
    default_hour: int = DEFAULT_ORDER_HOUR_UTC,
) -> datetime:
    """
    Время выполнения заказа, созданного в этом проходе: следующий день
    по частоте (для custom ближайший подходящий день недели) в preferred_time
    или в default_hour:00 UTC.
    """
    now = ensure_utc(now)
    if schedule.frequency == ScheduleFrequency.CUSTOM and schedule.days_of_week:
        target = _next_custom_date(now, schedule.days_of_week)
    else:
        target = now + timedelta(days=_FREQUENCY_DAYS.get(schedule.frequency, 1))

    if schedule.preferred_time:
        hours, minutes = (int(part) for part in schedule.preferred_time.split(":"))
        at = time(hours, minutes)
    else:
        at = time(default_hour, 0)

    return datetime.combine(target.date(), at, tzinfo=target.tzinfo)
