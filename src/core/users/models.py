# src/core/users/models.py
"""
Модели данных пользователей.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import UserRole
from src.common.utils import new_id, utc_now


class User(BaseModel):
    """Пользователь: клиент, курьер или администратор."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id, description="UUID пользователя")
    name: str = Field("", description="Имя")
    phone: Optional[str] = Field(None, description="Телефон")
    email: Optional[str] = Field(None, description="Email")
    roles: list[UserRole] = Field(default_factory=lambda: [UserRole.CUSTOMER], description="Роли")
    device_token: Optional[str] = Field(None, description="FCM токен устройства")
    telegram_id: Optional[int] = Field(None, description="Telegram chat id")
    language: str = Field("ru", description="Код языка")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def has_role(self, role: UserRole) -> bool:
        return role in self.roles

    @property
    def is_courier(self) -> bool:
        return self.has_role(UserRole.COURIER)
