# tests/infra/test_event_bus.py
"""
Тесты шины событий поверх замоканного aio-pika.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from aio_pika import DeliveryMode

from src.infra.event_bus import DomainEvent, EventBus, EventTypes
from src.shared.events.order_events import OrderPaid


class _Processing:
    async def __aenter__(self) -> None:
        return None

    async def __aexit__(self, *exc_info: object) -> bool:
        return False


def _incoming(body: bytes) -> MagicMock:
    message = MagicMock()
    message.body = body
    message.process.return_value = _Processing()
    return message


@pytest.fixture
def queue() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def bus(monkeypatch: pytest.MonkeyPatch, queue: AsyncMock) -> EventBus:
    instance = EventBus()
    connection = MagicMock()
    connection.is_closed = False
    channel = AsyncMock()
    channel.declare_queue.return_value = queue
    monkeypatch.setattr(instance, "_connection", connection)
    monkeypatch.setattr(instance, "_channel", channel)
    monkeypatch.setattr(instance, "_exchange", AsyncMock())
    monkeypatch.setattr(instance, "_consumers", {})
    return instance


class TestPublish:
    @pytest.mark.asyncio
    async def test_routing_key_is_event_type(self, bus: EventBus) -> None:
        event = OrderPaid(order_id="o1", customer_id="c1", address="ул. Ленина, 1")

        await bus.publish(event)

        message, = bus._exchange.publish.await_args.args
        assert bus._exchange.publish.await_args.kwargs["routing_key"] == EventTypes.ORDER_PAID
        assert message.delivery_mode == DeliveryMode.PERSISTENT
        assert message.message_id == event.event_id
        assert json.loads(message.body)["order_id"] == "o1"

    @pytest.mark.asyncio
    async def test_not_connected_is_silent(self, bus: EventBus, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(bus, "_connection", None)

        await bus.publish(DomainEvent(event_type=EventTypes.ORDER_PAID))

        bus._exchange.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broker_error_is_swallowed(self, bus: EventBus) -> None:
        bus._exchange.publish.side_effect = ConnectionError("channel closed")

        await bus.publish(DomainEvent(event_type=EventTypes.ORDER_PAID))


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_declares_and_binds_queue(self, bus: EventBus, queue: AsyncMock) -> None:
        handler = AsyncMock()

        await bus.subscribe(EventTypes.NOTIFICATION_SEND, handler, queue_name="courier.worker.notification_send")

        bus._channel.declare_queue.assert_awaited_once_with("courier.worker.notification_send", durable=True)
        queue.bind.assert_awaited_once_with(bus._exchange, routing_key=EventTypes.NOTIFICATION_SEND)
        queue.consume.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_default_queue_name(self, bus: EventBus) -> None:
        await bus.subscribe("order.paid", AsyncMock())

        assert bus._channel.declare_queue.await_args.args[0] == "courier.order_paid"

    @pytest.mark.asyncio
    async def test_same_queue_subscribed_once(self, bus: EventBus) -> None:
        await bus.subscribe("order.paid", AsyncMock(), queue_name="q")
        await bus.subscribe("order.paid", AsyncMock(), queue_name="q")

        bus._channel.declare_queue.assert_awaited_once()


class TestConsumer:
    @pytest.mark.asyncio
    async def test_dispatches_to_queue_handler(self, bus: EventBus, queue: AsyncMock) -> None:
        first, second = AsyncMock(), AsyncMock()
        await bus.subscribe("order.paid", first, queue_name="courier.a.order_paid")
        await bus.subscribe("order.paid", second, queue_name="courier.b.order_paid")
        consume_a = queue.consume.await_args_list[0].args[0]

        body = OrderPaid(order_id="o1", customer_id="c1", address="ул. Ленина, 1").to_json().encode()
        await consume_a(_incoming(body))

        first.assert_awaited_once()
        assert first.await_args.args[0].payload["order_id"] == "o1"
        second.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_body_is_acknowledged(self, bus: EventBus, queue: AsyncMock) -> None:
        handler = AsyncMock()
        await bus.subscribe("order.paid", handler, queue_name="q")
        consume = queue.consume.await_args.args[0]

        await consume(_incoming(b"not json"))

        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handler_error_contained(self, bus: EventBus, queue: AsyncMock) -> None:
        handler = AsyncMock(side_effect=RuntimeError("boom"))
        await bus.subscribe("order.paid", handler, queue_name="q")
        consume = queue.consume.await_args.args[0]

        await consume(_incoming(DomainEvent(event_type="order.paid").to_json().encode()))

        handler.assert_awaited_once()
