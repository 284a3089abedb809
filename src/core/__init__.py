# src/core/__init__.py
"""
Доменный слой: заказы, платежи, подписки, расписания, уведомления.
"""
