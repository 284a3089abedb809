# tests/core/test_notifications.py
"""
Тесты уведомлений: Telegram, push и канал статусов оплаты.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.common.constants import OrderStatus, UserRole
from src.common.exceptions import ExternalServiceError
from src.core.notifications.channel import PaymentStatusChannel, payment_channel
from src.core.notifications.push import PushNotifier
from src.core.notifications.service import NotificationService
from src.core.orders.models import Order
from src.core.users.models import User
from src.shared.events.base import EventTypes
from tests.fakes import FakeEventBus, FakeUserRepository


@pytest.fixture
def bus() -> FakeEventBus:
    return FakeEventBus()


@pytest.fixture
def users() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def service(bus: FakeEventBus, users: FakeUserRepository) -> NotificationService:
    return NotificationService(bus, users)


def _order(customer_id: str, courier_id: str | None = None) -> Order:
    return Order(
        customer_id=customer_id,
        courier_id=courier_id,
        address="ул. Ленина, 1",
        status=OrderStatus.PAID,
        scheduled_at=datetime(2025, 6, 4, 10, 0, tzinfo=timezone.utc),
    )


class TestNotificationService:
    """Тесты NotificationService."""

    @pytest.mark.asyncio
    async def test_couriers_get_push_and_telegram(
        self, service: NotificationService, bus: FakeEventBus, users: FakeUserRepository,
    ) -> None:
        users.add(User(name="К1", roles=[UserRole.COURIER], telegram_id=1, device_token="t1"))
        users.add(User(name="К2", roles=[UserRole.COURIER], telegram_id=2))
        users.add(User(name="Без каналов", roles=[UserRole.COURIER]))
        users.add(User(name="Клиент", roles=[UserRole.CUSTOMER], telegram_id=3))

        delivered = await service.notify_couriers_new_paid_order(_order("c1"))

        assert delivered == 2
        pushes = bus.of_type(EventTypes.NOTIFICATION_PUSH)
        assert [p.device_token for p in pushes] == ["t1"]
        assert pushes[0].data["type"] == "order_paid_ready"
        messages = bus.of_type(EventTypes.NOTIFICATION_SEND)
        assert sorted(m.chat_id for m in messages) == [1, 2]
        assert "ул. Ленина, 1" in messages[0].text
        assert "04.06.2025 10:00" in messages[0].text

    @pytest.mark.asyncio
    async def test_courier_list_error(self, service: NotificationService, users: FakeUserRepository) -> None:
        users.list_couriers = AsyncMock(side_effect=RuntimeError("db down"))

        assert await service.notify_couriers_new_paid_order(_order("c1")) == 0

    @pytest.mark.asyncio
    async def test_user_language(
        self, service: NotificationService, bus: FakeEventBus, users: FakeUserRepository,
    ) -> None:
        customer = users.add(User(name="Client", telegram_id=5, language="en"))
        order = _order(customer.id)

        assert await service.notify_customer_status(order) is True

        message = bus.of_type(EventTypes.NOTIFICATION_SEND)[0]
        assert message.chat_id == 5
        assert "ул. Ленина, 1" in message.text
        assert "paid" in message.text

    @pytest.mark.asyncio
    async def test_reassigned_notifies_both(
        self, service: NotificationService, bus: FakeEventBus, users: FakeUserRepository,
    ) -> None:
        old = users.add(User(name="Старый", roles=[UserRole.COURIER], telegram_id=10))
        new = users.add(User(name="Новый", roles=[UserRole.COURIER], telegram_id=11))

        await service.notify_order_reassigned(_order("c1", new.id), old.id, new.id)

        assert [m.chat_id for m in bus.of_type(EventTypes.NOTIFICATION_SEND)] == [10, 11]

    @pytest.mark.asyncio
    async def test_overdue_without_courier(self, service: NotificationService, bus: FakeEventBus) -> None:
        assert await service.notify_order_overdue(_order("c1"), 15) is False
        assert bus.published == []

    @pytest.mark.asyncio
    async def test_overdue_minutes_in_text(
        self, service: NotificationService, bus: FakeEventBus, users: FakeUserRepository,
    ) -> None:
        courier = users.add(User(name="К", roles=[UserRole.COURIER], telegram_id=7))

        await service.notify_order_overdue(_order("c1", courier.id), 42)

        assert "42" in bus.of_type(EventTypes.NOTIFICATION_SEND)[0].text

    @pytest.mark.asyncio
    async def test_unknown_user(self, service: NotificationService, bus: FakeEventBus) -> None:
        assert await service.notify_customer_status(_order("ghost")) is False
        assert bus.published == []

    @pytest.mark.asyncio
    async def test_publish_error_is_swallowed(self, users: FakeUserRepository) -> None:
        """Ошибка шины не ломает операцию, вызвавшую уведомление."""
        bus = AsyncMock()
        bus.publish.side_effect = RuntimeError("broker down")
        service = NotificationService(bus, users)
        user = users.add(User(name="К", telegram_id=9, device_token="tok"))

        assert await service.notify_user(user, "ORDER_OVERDUE_TITLE", "ORDER_OVERDUE", {}) is False


class TestPushNotifier:
    @pytest.mark.asyncio
    async def test_send_to_user_without_token(self, bus: FakeEventBus, users: FakeUserRepository) -> None:
        push = PushNotifier(bus, users)
        user = users.add(User(name="Без токена"))

        assert await push.send_to_user(user.id, "t", "b") is False
        assert bus.published == []

    @pytest.mark.asyncio
    async def test_send_to_user(self, bus: FakeEventBus, users: FakeUserRepository) -> None:
        push = PushNotifier(bus, users)
        user = users.add(User(name="С токеном", device_token="tok"))

        assert await push.send_to_user(user.id, "t", "b", {"k": "v"}) is True

        event = bus.of_type(EventTypes.NOTIFICATION_PUSH)[0]
        assert (event.device_token, event.title, event.body, event.data, event.user_id) == (
            "tok", "t", "b", {"k": "v"}, user.id,
        )

    @pytest.mark.asyncio
    async def test_empty_token(self, bus: FakeEventBus, users: FakeUserRepository) -> None:
        assert await PushNotifier(bus, users).send_to_device("", "t", "b") is False


class TestPaymentStatusChannel:
    """Тесты канала статусов оплаты."""

    def test_channel_name(self) -> None:
        assert payment_channel("p1") == "payment:p1"

    @pytest.mark.asyncio
    async def test_success(self, mock_redis: AsyncMock) -> None:
        channel = PaymentStatusChannel(mock_redis)

        assert await channel.notify_payment_success("p1", "o1") is True

        name, message = mock_redis.publish.await_args.args
        assert name == "payment:p1"
        assert message["type"] == "payment_success"
        assert message["subject_id"] == "o1"
        assert "timestamp" in message

    @pytest.mark.asyncio
    async def test_error_reason(self, mock_redis: AsyncMock) -> None:
        channel = PaymentStatusChannel(mock_redis)

        await channel.notify_payment_error("p1", "s1", "canceled")

        message = mock_redis.publish.await_args.args[1]
        assert message["type"] == "payment_error"
        assert message["reason"] == "canceled"

    @pytest.mark.asyncio
    async def test_publish_failure(self, mock_redis: AsyncMock) -> None:
        mock_redis.publish.side_effect = ExternalServiceError("Redis недоступен")
        channel = PaymentStatusChannel(mock_redis)

        assert await channel.notify_payment_success("p1", "o1") is False
