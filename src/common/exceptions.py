# src/common/exceptions.py
"""
Иерархия доменных ошибок.
Каждая ошибка знает свой HTTP-код, обработчик в приложении
превращает её в ErrorResponse.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Базовая доменная ошибка."""

    status_code: int = 400
    error_code: str = "domain_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """Сущность не найдена (заказ, платёж, подписка, пользователь)."""

    status_code = 404
    error_code = "not_found"


class BadRequestError(DomainError):
    """Некорректный запрос (не хватает данных для перехода и т.п.)."""

    status_code = 400
    error_code = "bad_request"


class InvalidTransitionError(DomainError):
    """Недопустимый переход статуса."""

    status_code = 400
    error_code = "invalid_transition"

    def __init__(self, current: str, target: str, entity: str = "order") -> None:
        super().__init__(
            f"Недопустимый переход {entity}: {current} -> {target}",
            details={"current": str(current), "target": str(target), "entity": entity},
        )
        self.current = current
        self.target = target


class CourierMismatchError(BadRequestError):
    """Заказ назначен другому курьеру."""

    error_code = "courier_mismatch"


class ConflictError(DomainError):
    """Конфликт состояния (вторая активная подписка)."""

    status_code = 409
    error_code = "conflict"


class ExternalServiceError(DomainError):
    """Внешний сервис (платёжный шлюз, канал уведомлений) недоступен."""

    status_code = 502
    error_code = "external_failure"
