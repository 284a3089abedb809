# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей."""
    CUSTOMER = "customer"
    COURIER = "courier"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    """Статусы заказа."""
    NEW = "new"
    PAID = "paid"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELED = "canceled"

    def __str__(self) -> str:
        return self.value


class PaymentStatus(str, Enum):
    """Статусы платежа (общие для заказов и подписок)."""
    PENDING = "pending"
    PROCESSING = "processing"
    WAITING_FOR_CAPTURE = "waiting_for_capture"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELED = "canceled"

    def __str__(self) -> str:
        return self.value


class PaymentMethod(str, Enum):
    """Способы оплаты."""
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"
    SUBSCRIPTION = "subscription"


class PaymentSubject(str, Enum):
    """Сущность, за которую проходит платёж."""
    ORDER = "order"
    SUBSCRIPTION = "subscription"


class SubscriptionType(str, Enum):
    """Типы подписок."""
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ONE_TIME = "one_time"


class SubscriptionStatus(str, Enum):
    """Статусы подписки."""
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELED = "canceled"

    def __str__(self) -> str:
        return self.value


class ExpiryReason(str, Enum):
    """Причина истечения подписки."""
    TIME = "time"
    LIMIT = "limit"


class ScheduleFrequency(str, Enum):
    """Периодичность регулярного заказа."""
    DAILY = "daily"
    EVERY_OTHER_DAY = "every_other_day"
    WEEKLY = "weekly"
    CUSTOM = "custom"


# Значение лимита заказов для безлимитной подписки
UNLIMITED_ORDERS = -1
