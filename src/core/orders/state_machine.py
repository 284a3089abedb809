# src/core/orders/state_machine.py
"""
Граф допустимых переходов статусов заказа.
"""

from __future__ import annotations

from src.common.constants import OrderStatus
from src.common.exceptions import InvalidTransitionError


class OrderStateMachine:
    """
    Статусы двигаются только вперёд, в NEW вернуться нельзя.
    PAID достижим только из NEW: оплата уже назначенного заказа
    фиксируется в платеже, а статус курьера не трогается.
    """

    ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
        OrderStatus.NEW: frozenset({OrderStatus.PAID, OrderStatus.ASSIGNED, OrderStatus.CANCELED}),
        OrderStatus.PAID: frozenset({OrderStatus.ASSIGNED, OrderStatus.CANCELED}),
        OrderStatus.ASSIGNED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELED}),
        OrderStatus.IN_PROGRESS: frozenset({OrderStatus.DONE, OrderStatus.CANCELED}),
        OrderStatus.DONE: frozenset(),
        OrderStatus.CANCELED: frozenset(),
    }

    TERMINAL: frozenset[OrderStatus] = frozenset({OrderStatus.DONE, OrderStatus.CANCELED})

    # Удаление запрещено начиная с этих статусов
    UNDELETABLE: frozenset[OrderStatus] = frozenset({OrderStatus.IN_PROGRESS, OrderStatus.DONE})

    @classmethod
    def can_transition(cls, current_status: OrderStatus | str, new_status: OrderStatus | str) -> bool:
        try:
            current = OrderStatus(current_status)
            target = OrderStatus(new_status)
        except ValueError:
            return False
        return target in cls.ALLOWED_TRANSITIONS.get(current, frozenset())

    @classmethod
    def ensure_transition(cls, current_status: OrderStatus, new_status: OrderStatus) -> None:
        """Бросает InvalidTransitionError, если переход не разрешён."""
        if not cls.can_transition(current_status, new_status):
            raise InvalidTransitionError(str(current_status), str(new_status), entity="order")

    @classmethod
    def is_terminal(cls, status: OrderStatus) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def can_delete(cls, status: OrderStatus) -> bool:
        return status not in cls.UNDELETABLE
