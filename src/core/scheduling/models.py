# src/core/scheduling/models.py
"""
Модели регулярных заказов (расписаний).
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.common.constants import ScheduleFrequency
from src.common.utils import ensure_utc, new_id, utc_now
from src.core.orders.models import AddressDetails

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def _check_time(value: Optional[str]) -> Optional[str]:
    if value is not None and not _TIME_RE.match(value):
        raise ValueError("Время должно быть в формате HH:MM")
    return value


def _check_days(value: Optional[list[int]]) -> Optional[list[int]]:
    if value is None:
        return None
    if any(day < 0 or day > 6 for day in value):
        raise ValueError("Дни недели задаются числами 0-6 (0 = воскресенье)")
    return sorted(set(value))


class ScheduleDefinition(BaseModel):
    """Правило регулярного заказа."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id, description="UUID расписания")
    customer_id: str = Field(..., description="ID клиента")
    address: str = Field(..., description="Адрес")
    address_details: Optional[AddressDetails] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    frequency: ScheduleFrequency = Field(..., description="Периодичность")
    preferred_time: Optional[str] = Field(None, description="Желаемое время HH:MM (UTC)")
    days_of_week: Optional[list[int]] = Field(None, description="Дни недели для custom, 0 = воскресенье")
    start_date: datetime
    end_date: Optional[datetime] = None
    is_active: bool = True
    last_created_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ScheduleCreateDTO(BaseModel):
    """DTO для создания расписания."""

    customer_id: str
    address: str = Field(..., min_length=1)
    address_details: Optional[AddressDetails] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    frequency: ScheduleFrequency
    preferred_time: Optional[str] = None
    days_of_week: Optional[list[int]] = None
    start_date: datetime
    end_date: Optional[datetime] = None

    @field_validator("preferred_time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_time(v)

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        return _check_days(v)

    @model_validator(mode="after")
    def check_custom_days(self) -> "ScheduleCreateDTO":
        if self.frequency == ScheduleFrequency.CUSTOM and not self.days_of_week:
            raise ValueError("Для custom нужно указать дни недели")
        if self.end_date is not None and ensure_utc(self.end_date) <= ensure_utc(self.start_date):
            raise ValueError("end_date должна быть позже start_date")
        return self


class ScheduleUpdateDTO(BaseModel):
    """Частичное обновление расписания: меняются только переданные поля."""

    address: Optional[str] = Field(None, min_length=1)
    address_details: Optional[AddressDetails] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    frequency: Optional[ScheduleFrequency] = None
    preferred_time: Optional[str] = None
    days_of_week: Optional[list[int]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator("preferred_time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return _check_time(v)

    @field_validator("days_of_week")
    @classmethod
    def validate_days(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        return _check_days(v)


class ScheduleRunReport(BaseModel):
    """Итог одного прохода движка регулярных заказов."""

    checked: int = 0
    created: int = 0
    not_due: int = 0
    deactivated: int = 0
    failed: int = 0
    busy: bool = Field(False, description="Проход не запускался: предыдущий ещё идёт")
    order_ids: list[str] = Field(default_factory=list)
