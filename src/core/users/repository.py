# src/core/users/repository.py
"""
Справочник пользователей: существование, роли и контакты для уведомлений.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Record

from src.common.constants import UserRole
from src.core.users.models import User
from src.infra.database import Executor

_USER_COLUMNS = """
    id, name, phone, email, roles, device_token, telegram_id, language,
    created_at, updated_at
"""


class UserRepository:
    """Репозиторий пользователей."""

    def __init__(self, db: Executor) -> None:
        self._db = db

    async def get_by_id(self, user_id: str) -> Optional[User]:
        row = await self._db.fetchrow(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
            user_id,
        )
        return self._row_to_user(row) if row else None

    async def list_by_role(self, role: UserRole) -> list[User]:
        """Все пользователи с указанной ролью."""
        rows = await self._db.fetch(
            f"SELECT {_USER_COLUMNS} FROM users WHERE $1 = ANY(roles) ORDER BY created_at",
            role.value,
        )
        return [self._row_to_user(row) for row in rows]

    async def list_couriers(self) -> list[User]:
        return await self.list_by_role(UserRole.COURIER)

    @staticmethod
    def _row_to_user(row: Record | dict) -> User:
        return User(
            id=row["id"],
            name=row["name"] or "",
            phone=row["phone"],
            email=row["email"],
            roles=[UserRole(role) for role in (row["roles"] or [])],
            device_token=row["device_token"],
            telegram_id=row["telegram_id"],
            language=row["language"] or "ru",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
