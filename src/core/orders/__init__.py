"""
Домен заказов.
Модели, граф статусов и сервис заказов.
"""

from src.core.orders.models import AddressDetails, Order, OrderCreateDTO, OrderView
from src.core.orders.repository import OrderRepository
from src.core.orders.service import OrderService
from src.core.orders.state_machine import OrderStateMachine

__all__ = [
    "AddressDetails",
    "Order",
    "OrderCreateDTO",
    "OrderRepository",
    "OrderService",
    "OrderStateMachine",
    "OrderView",
]
