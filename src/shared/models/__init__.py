# src/shared/models/__init__.py
"""
Общие модели ответов API.
"""

from src.shared.models.common import ErrorResponse, HealthStatus

__all__ = [
    "ErrorResponse",
    "HealthStatus",
]
