"""
Общий код между компонентами.

Модули:
- events: схемы событий RabbitMQ
- models: общие модели ответов API
"""

__all__: list[str] = []
