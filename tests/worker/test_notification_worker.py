# tests/worker/test_notification_worker.py
"""
Тесты воркера доставки Telegram-сообщений.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.config import settings
from src.infra.event_bus import DomainEvent, EventTypes
from src.shared.events.notification_events import TelegramMessageRequested
from src.worker.notifications import NotificationWorker
from tests.fakes import FakeEventBus


@pytest.fixture
def bot() -> MagicMock:
    bot = MagicMock()
    bot.send_message = AsyncMock()
    return bot


def _wire(event: DomainEvent) -> DomainEvent:
    """Событие в том виде, в каком его отдаёт шина."""
    return DomainEvent.from_json(event.to_json())


class TestNotificationWorker:
    """Тесты NotificationWorker."""

    @pytest.mark.asyncio
    async def test_start_subscribes(self, bot: MagicMock) -> None:
        bus = FakeEventBus()
        worker = NotificationWorker(event_bus=bus, bot=bot)

        await worker.start()

        assert worker.is_running
        assert [(event_type, queue) for event_type, _, queue in bus.subscriptions] == [
            (EventTypes.NOTIFICATION_SEND, "courier.notificationworker.notification_send"),
        ]

    @pytest.mark.asyncio
    async def test_start_without_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.telegram, "BOT_TOKEN", "")
        bus = FakeEventBus()
        worker = NotificationWorker(event_bus=bus)

        await worker.start()

        assert worker.is_running is False
        assert bus.subscriptions == []

    @pytest.mark.asyncio
    async def test_sends_message(self, bot: MagicMock) -> None:
        worker = NotificationWorker(event_bus=FakeEventBus(), bot=bot)
        event = _wire(TelegramMessageRequested(chat_id=1001, text="Привет", parse_mode="HTML"))

        await worker.handle_event(event)

        bot.send_message.assert_awaited_once_with(chat_id=1001, text="Привет", parse_mode="HTML")

    @pytest.mark.asyncio
    async def test_other_events_ignored(self, bot: MagicMock) -> None:
        worker = NotificationWorker(event_bus=FakeEventBus(), bot=bot)

        await worker.handle_event(DomainEvent(event_type=EventTypes.ORDER_PAID))

        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_error(self, bot: MagicMock) -> None:
        bot.send_message.side_effect = RuntimeError("telegram down")
        worker = NotificationWorker(event_bus=FakeEventBus(), bot=bot)

        assert await worker._send_message(1, "text") is False

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_escape(self, bot: MagicMock) -> None:
        """Ошибка обработки логируется, очередь продолжает работу."""
        worker = NotificationWorker(event_bus=FakeEventBus(), bot=bot)
        await worker.start()
        broken = DomainEvent(event_type=EventTypes.NOTIFICATION_SEND)

        await worker._on_event(broken)

        bot.send_message.assert_not_awaited()
        assert (worker.processed, worker.failed) == (0, 1)

    @pytest.mark.asyncio
    async def test_counts_processed(self, bot: MagicMock) -> None:
        worker = NotificationWorker(event_bus=FakeEventBus(), bot=bot)
        await worker.start()

        await worker._on_event(_wire(TelegramMessageRequested(chat_id=7, text="Новый заказ")))

        bot.send_message.assert_awaited_once()
        assert (worker.processed, worker.failed) == (1, 0)

    def test_queue_name(self, bot: MagicMock) -> None:
        worker = NotificationWorker(event_bus=FakeEventBus(), bot=bot)
        assert worker.queue_name("order.paid") == "courier.notificationworker.order_paid"

    @pytest.mark.asyncio
    async def test_stopped_worker_skips_events(self, bot: MagicMock) -> None:
        worker = NotificationWorker(event_bus=FakeEventBus(), bot=bot)

        await worker._on_event(_wire(TelegramMessageRequested(chat_id=1, text="x")))

        bot.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_keeps_external_bot(self, bot: MagicMock) -> None:
        worker = NotificationWorker(event_bus=FakeEventBus(), bot=bot)
        await worker.start()

        await worker.stop()

        assert worker.is_running is False
        bot.session.close.assert_not_called()
