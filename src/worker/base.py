# src/worker/base.py
"""
Потребитель доменных событий из RabbitMQ.

На каждый тип события воркер получает свою durable-очередь
вида courier.<воркер>.<тип_события>, поэтому несколько экземпляров
одного воркера делят очередь между собой.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.infra.event_bus import DomainEvent, EventBus, get_event_bus


class BaseWorker(ABC):
    """
    Базовый потребитель событий.

    Ошибка обработки одного события логируется и считается в failed,
    очередь при этом продолжает работу.
    """

    queue_prefix = "courier"

    def __init__(self, event_bus: Optional[EventBus] = None) -> None:
        self.event_bus = event_bus or get_event_bus()
        self._running = False
        self.processed = 0
        self.failed = 0

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя воркера, из него строятся имена очередей."""

    @property
    @abstractmethod
    def subscriptions(self) -> List[str]:
        """Типы событий (routing key), которые читает воркер."""

    @abstractmethod
    async def handle_event(self, event: DomainEvent) -> None:
        ...

    @property
    def is_running(self) -> bool:
        return self._running

    def queue_name(self, event_type: str) -> str:
        return f"{self.queue_prefix}.{self.name.lower()}.{event_type.replace('.', '_')}"

    async def start(self) -> None:
        if self._running:
            return
        self._running = True

        queues = []
        for event_type in self.subscriptions:
            queue = self.queue_name(event_type)
            await self.event_bus.subscribe(event_type=event_type, handler=self._on_event, queue_name=queue)
            queues.append(queue)

        await log_info(
            f"Воркер {self.name} запущен, очереди: {', '.join(queues) or '-'}",
            type_msg=TypeMsg.INFO,
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        await log_info(
            f"Воркер {self.name} остановлен: обработано {self.processed}, с ошибкой {self.failed}",
            type_msg=TypeMsg.INFO,
        )

    async def _on_event(self, event: DomainEvent) -> None:
        # После stop() сообщения, которые ещё успели прийти, не трогаем
        if not self._running:
            return

        context = {"event_type": event.event_type, "event_id": event.event_id, "worker": self.name}
        try:
            await self.handle_event(event)
        except Exception as e:
            self.failed += 1
            await log_error(f"Воркер {self.name}: ошибка обработки события: {e}", extra=context, exc_info=True)
            return

        self.processed += 1
        await log_info(f"Воркер {self.name}: событие обработано", type_msg=TypeMsg.DEBUG, extra=context)
