# src/infra/event_bus.py
"""
Шина доменных событий поверх RabbitMQ.

Один topic exchange, routing key совпадает с event_type. У каждого
потребителя своя durable-очередь, привязанная к нужным routing key;
сообщения публикуются persistent, чтобы order.paid и notification.send
переживали перезапуск брокера.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange, AbstractIncomingMessage

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, log_warning
from src.shared.events.base import DomainEvent, EventTypes

__all__ = ["EventBus", "EventHandler", "DomainEvent", "EventTypes", "get_event_bus", "init_event_bus", "close_event_bus"]


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """
    Публикация и подписка на доменные события (Singleton на процесс).

    publish() не бросает исключений: доменная операция уже сохранена в БД,
    недоступность брокера только логируется.
    """

    _instance: EventBus | None = None

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._exchange_name = "courier.events"
        # Очередь -> обработчик; одна очередь обслуживает одного потребителя
        self._consumers: dict[str, EventHandler] = {}

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    async def connect(self, url: str, exchange_name: str | None = None, prefetch_count: int = 10) -> None:
        if self.is_connected:
            return
        if exchange_name:
            self._exchange_name = exchange_name

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=prefetch_count)
        self._exchange = await self._channel.declare_exchange(self._exchange_name, ExchangeType.TOPIC, durable=True)

    async def disconnect(self) -> None:
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        self._channel = None
        self._exchange = None
        self._consumers = {}
        await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, event: DomainEvent) -> None:
        context = {"event_type": event.event_type, "event_id": event.event_id}
        if not self.is_connected or self._exchange is None:
            await log_warning("RabbitMQ не подключён, событие не опубликовано", extra=context)
            return

        message = Message(
            body=event.to_json().encode(),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=event.event_id,
            timestamp=datetime.now(timezone.utc),
            type=event.event_type,
        )
        try:
            await self._exchange.publish(message, routing_key=event.event_type)
        except Exception as e:
            await log_error(f"Ошибка публикации события: {e}", extra=context)
            return
        await log_info(f"Событие {event.event_type} опубликовано", type_msg=TypeMsg.DEBUG, extra=context)

    async def subscribe(self, event_type: str, handler: EventHandler, queue_name: str | None = None) -> None:
        """
        Привязывает durable-очередь к routing key и начинает её читать.

        Args:
            event_type: Routing key (допустимы шаблоны topic exchange)
            handler: Обработчик события
            queue_name: Имя очереди, по умолчанию courier.<event_type>
        """
        if not self.is_connected or self._channel is None or self._exchange is None:
            await log_error("RabbitMQ не подключён, подписка невозможна", extra={"event_type": event_type})
            return

        queue_name = queue_name or f"courier.{event_type.replace('.', '_')}"
        if queue_name in self._consumers:
            await log_warning(f"Очередь {queue_name} уже читается, повторная подписка пропущена")
            return

        self._consumers[queue_name] = handler
        queue = await self._channel.declare_queue(queue_name, durable=True)
        await queue.bind(self._exchange, routing_key=event_type)
        await queue.consume(self._make_consumer(queue_name))
        await log_info(f"Очередь {queue_name} <- {event_type}", type_msg=TypeMsg.DEBUG)

    def _make_consumer(self, queue_name: str) -> Callable[[AbstractIncomingMessage], Awaitable[None]]:
        async def consume(message: AbstractIncomingMessage) -> None:
            # Сообщение подтверждается в любом случае: битое или упавшее
            # в обработчике событие не должно крутиться в очереди бесконечно
            async with message.process(ignore_processed=True):
                try:
                    event = DomainEvent.from_json(message.body)
                except ValueError as e:
                    await log_error(f"Некорректное сообщение в очереди {queue_name}: {e}")
                    return

                handler = self._consumers.get(queue_name)
                if handler is None:
                    return
                try:
                    await handler(event)
                except Exception as e:
                    await log_error(
                        f"Обработчик очереди {queue_name} упал: {e}",
                        extra={"event_type": event.event_type, "event_id": event.event_id},
                    )

        return consume

    async def health_check(self) -> bool:
        return self.is_connected


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


async def init_event_bus() -> None:
    from src.config import settings

    section = settings.rabbitmq
    await get_event_bus().connect(
        url=section.url,
        exchange_name=section.RABBITMQ_EXCHANGE,
        prefetch_count=section.RABBITMQ_PREFETCH_COUNT,
    )
    await log_info(
        f"RabbitMQ подключён: {section.RABBITMQ_HOST}:{section.RABBITMQ_PORT}, exchange {section.RABBITMQ_EXCHANGE}",
        type_msg=TypeMsg.INFO,
    )


async def close_event_bus() -> None:
    await get_event_bus().disconnect()
