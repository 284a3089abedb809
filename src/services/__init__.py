# src/services/__init__.py
"""
HTTP-приложения.

- backend: API заказов, подписок, расписаний и вебхуков оплаты
"""

__all__: list[str] = []
