# src/core/users/__init__.py
"""
Домен пользователей: справочник клиентов и курьеров.
"""

from src.core.users.models import User
from src.core.users.repository import UserRepository

__all__ = ["User", "UserRepository"]
