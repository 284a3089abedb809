# tests/core/test_webhooks.py
"""
Тесты разбора вебхуков и их обработки.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import asyncpg
import pytest
import pytest_asyncio

from src.common.constants import OrderStatus, PaymentStatus, PaymentSubject, SubscriptionStatus
from src.common.exceptions import NotFoundError
from src.core.orders.models import Order
from src.core.payments.models import Payment
from src.core.subscriptions.models import Subscription
from src.core.users.models import User
from src.core.webhooks.models import (
    OrderPaymentMetadata,
    SubscriptionPaymentMetadata,
    WebhookEvent,
    classify_metadata,
)
from src.shared.events.base import EventTypes
from tests.fakes import Harness, make_subscription


def _event(event_type: str, metadata: dict | None = None, **obj) -> WebhookEvent:
    body = {"event": event_type, "object": {"id": obj.pop("id", "yk-1"), "metadata": metadata or {}, **obj}}
    return WebhookEvent.model_validate(body)


class TestClassifyMetadata:
    """Тесты определения типа платежа по метаданным."""

    def test_order(self) -> None:
        result = classify_metadata({"orderId": "o1", "paymentId": "p1"})
        assert isinstance(result, OrderPaymentMetadata)
        assert result.subject == PaymentSubject.ORDER
        assert result.subject_id == "o1"

    def test_subscription(self) -> None:
        result = classify_metadata({"subscriptionId": "s1", "paymentId": "p1"})
        assert isinstance(result, SubscriptionPaymentMetadata)
        assert result.subject_id == "s1"

    def test_snake_case_keys(self) -> None:
        result = classify_metadata({"order_id": "o1", "payment_id": "p1"})
        assert isinstance(result, OrderPaymentMetadata)

    @pytest.mark.parametrize("raw", [
        None,
        {},
        {"paymentId": "p1"},
        {"orderId": "o1"},
        {"orderId": "o1", "subscriptionId": "s1", "paymentId": "p1"},
        {"orderId": "", "paymentId": "p1"},
    ])
    def test_unrecognized(self, raw: dict | None) -> None:
        assert classify_metadata(raw) is None


class TestWebhookEvent:
    def test_type_field_fallback(self) -> None:
        event = WebhookEvent.model_validate({"type": "payment.succeeded", "object": {"id": "x"}})
        assert event.event_type == "payment.succeeded"

    def test_refund_provider_id(self) -> None:
        event = WebhookEvent.model_validate({
            "event": "refund.succeeded",
            "object": {"id": "refund-1", "payment_id": "yk-1"},
        })
        assert event.provider_payment_id == "yk-1"

    def test_extra_fields_allowed(self) -> None:
        event = WebhookEvent.model_validate({
            "event": "payment.succeeded",
            "object": {"id": "x", "amount": {"value": "10.00"}},
        })
        assert event.object.metadata == {}


@pytest_asyncio.fixture
async def order_payment(harness: Harness, customer: User) -> tuple[Order, Payment]:
    order = harness.orders_repo.add(Order(
        customer_id=customer.id,
        address="ул. Ленина, 1",
        price=50000,
        scheduled_at=datetime.now(timezone.utc) + timedelta(hours=5),
    ))
    payment = await harness.ledger.open(order.id, order.price, PaymentSubject.ORDER)
    return order, payment


def _order_meta(order: Order, payment: Payment) -> dict:
    return {"orderId": order.id, "paymentId": payment.id}


class TestReconcilerOrders:
    """Тесты обработки вебхуков по заказам."""

    @pytest.mark.asyncio
    async def test_succeeded_marks_order_paid(self, harness: Harness, order_payment, courier: User) -> None:
        order, payment = order_payment

        result = await harness.reconciler.handle(_event("payment.succeeded", _order_meta(order, payment)))
        await harness.settle()

        assert result.success is True
        assert result.type == "order"
        assert result.status == PaymentStatus.PAID
        assert result.message == "Webhook заказа обработан успешно"
        assert harness.orders_repo.orders[order.id].status == OrderStatus.PAID
        assert harness.payments.payments[payment.id].provider_id == "yk-1"

        channel_calls = harness.redis.publish.await_args_list
        assert channel_calls[0].args[0] == f"payment:{payment.id}"
        assert channel_calls[0].args[1]["type"] == "payment_success"

    @pytest.mark.asyncio
    async def test_duplicate_succeeded(self, harness: Harness, order_payment) -> None:
        """Повторный вебхук успешен и не переводит заказ второй раз."""
        order, payment = order_payment
        event = _event("payment.succeeded", _order_meta(order, payment))

        first = await harness.reconciler.handle(event)
        second = await harness.reconciler.handle(event)

        assert first.success and second.success
        assert harness.orders_repo.orders[order.id].status == OrderStatus.PAID
        assert len(harness.event_bus.of_type(EventTypes.ORDER_PAID)) == 1
        assert len(harness.event_bus.of_type(EventTypes.PAYMENT_STATUS_CHANGED)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicates(self, harness: Harness, order_payment) -> None:
        order, payment = order_payment
        event = _event("payment.succeeded", _order_meta(order, payment))

        results = await asyncio.gather(*(harness.reconciler.handle(event) for _ in range(3)))

        assert all(r.success for r in results)
        assert harness.orders_repo.orders[order.id].status == OrderStatus.PAID
        assert len(harness.event_bus.of_type(EventTypes.ORDER_PAID)) == 1

    @pytest.mark.asyncio
    async def test_paid_for_assigned_order_keeps_status(
        self, harness: Harness, order_payment, courier: User,
    ) -> None:
        order, payment = order_payment
        harness.orders_repo.orders[order.id].status = OrderStatus.ASSIGNED
        harness.orders_repo.orders[order.id].courier_id = courier.id

        result = await harness.reconciler.handle(_event("payment.succeeded", _order_meta(order, payment)))

        assert result.success is True
        assert harness.payments.payments[payment.id].status == PaymentStatus.PAID
        assert harness.orders_repo.orders[order.id].status == OrderStatus.ASSIGNED

    @pytest.mark.asyncio
    async def test_canceled_cancels_new_order(self, harness: Harness, order_payment) -> None:
        order, payment = order_payment

        result = await harness.reconciler.handle(_event("payment.canceled", _order_meta(order, payment)))
        await harness.settle()

        assert result.status == PaymentStatus.CANCELED
        assert harness.orders_repo.orders[order.id].status == OrderStatus.CANCELED
        published = harness.redis.publish.await_args_list[0].args[1]
        assert published["type"] == "payment_error"
        assert published["reason"] == "canceled"

    @pytest.mark.asyncio
    async def test_late_canceled_after_paid(self, harness: Harness, order_payment) -> None:
        """Запоздавшая отмена не откатывает оплату."""
        order, payment = order_payment
        await harness.reconciler.handle(_event("payment.succeeded", _order_meta(order, payment)))

        result = await harness.reconciler.handle(_event("payment.canceled", _order_meta(order, payment)))

        assert result.status == PaymentStatus.PAID
        assert harness.orders_repo.orders[order.id].status == OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_waiting_for_capture(self, harness: Harness, order_payment) -> None:
        order, payment = order_payment

        result = await harness.reconciler.handle(_event("payment.waiting_for_capture", _order_meta(order, payment)))

        assert result.status == PaymentStatus.WAITING_FOR_CAPTURE
        assert harness.orders_repo.orders[order.id].status == OrderStatus.NEW

    @pytest.mark.asyncio
    async def test_refund_by_provider_id(self, harness: Harness, order_payment) -> None:
        order, payment = order_payment
        await harness.reconciler.handle(_event("payment.succeeded", _order_meta(order, payment), id="yk-77"))

        result = await harness.reconciler.handle(_event("refund.succeeded", id="refund-1", payment_id="yk-77"))

        assert result.success is True
        assert result.status == PaymentStatus.REFUNDED
        assert harness.payments.payments[payment.id].status == PaymentStatus.REFUNDED

    @pytest.mark.asyncio
    async def test_refund_unknown_provider_id(self, harness: Harness) -> None:
        result = await harness.reconciler.handle(_event("refund.succeeded", id="refund-1", payment_id="nope"))

        assert result.success is False
        assert result.message == "Платёж не найден"


class TestReconcilerEdgeCases:
    @pytest.mark.asyncio
    async def test_unknown_event(self, harness: Harness) -> None:
        result = await harness.reconciler.handle(_event("payment.pending"))

        assert result.success is False
        assert "не обрабатывается" in result.message

    @pytest.mark.asyncio
    async def test_unclassified_metadata(self, harness: Harness) -> None:
        result = await harness.reconciler.handle(_event("payment.succeeded", {"foo": "bar"}))

        assert result.success is False
        assert result.message == "Неизвестный тип платежа"

    @pytest.mark.asyncio
    async def test_missing_payment(self, harness: Harness) -> None:
        result = await harness.reconciler.handle(
            _event("payment.succeeded", {"orderId": "o1", "paymentId": "ghost"}),
        )

        assert result.success is False
        assert result.message == "Платёж не найден"
        assert result.type == "order"

    @pytest.mark.asyncio
    async def test_metadata_mismatch(self, harness: Harness, order_payment) -> None:
        order, payment = order_payment

        result = await harness.reconciler.handle(
            _event("payment.succeeded", {"orderId": "another-order", "paymentId": payment.id}),
        )

        assert result.success is False
        assert harness.payments.payments[payment.id].status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_taken_provider_id(self, harness: Harness, order_payment) -> None:
        """Чужой provider_id: ответ без исключения, заказ и платёж не меняются."""
        order, payment = order_payment
        violation = asyncpg.UniqueViolationError("duplicate key value violates unique constraint")

        with patch.object(harness.payments, "update_status", AsyncMock(side_effect=violation)):
            result = await harness.reconciler.handle(_event("payment.succeeded", _order_meta(order, payment)))

        assert result.success is False
        assert result.payment_id == payment.id
        assert result.message == "provider_id уже привязан к другому платежу"
        assert harness.payments.payments[payment.id].status == PaymentStatus.PENDING
        assert harness.orders_repo.orders[order.id].status == OrderStatus.NEW


class TestReconcilerSubscriptions:
    """Тесты обработки вебхуков по подпискам."""

    @pytest.mark.asyncio
    async def test_succeeded_activates(self, harness: Harness, customer: User) -> None:
        subscription = harness.subscriptions_repo.add(
            make_subscription(customer.id, status=SubscriptionStatus.PENDING),
        )
        payment = await harness.ledger.open(subscription.id, subscription.price, PaymentSubject.SUBSCRIPTION)
        meta = {"subscriptionId": subscription.id, "paymentId": payment.id}

        first = await harness.reconciler.handle(_event("payment.succeeded", meta))
        second = await harness.reconciler.handle(_event("payment.succeeded", meta))

        assert first.message == "Webhook подписки обработан успешно"
        assert second.success is True
        assert harness.subscriptions_repo.subscriptions[subscription.id].status == SubscriptionStatus.ACTIVE
        assert len(harness.event_bus.of_type(EventTypes.SUBSCRIPTION_ACTIVATED)) == 1

    @pytest.mark.asyncio
    async def test_paid_while_other_active(
        self, harness: Harness, customer: User, active_subscription: Subscription,
    ) -> None:
        """Платёж фиксируется, вторая подписка не активируется."""
        pending = harness.subscriptions_repo.add(make_subscription(customer.id, status=SubscriptionStatus.PENDING))
        payment = await harness.ledger.open(pending.id, pending.price, PaymentSubject.SUBSCRIPTION)

        result = await harness.reconciler.handle(
            _event("payment.succeeded", {"subscriptionId": pending.id, "paymentId": payment.id}),
        )

        assert result.success is True
        assert harness.payments.payments[payment.id].status == PaymentStatus.PAID
        assert harness.subscriptions_repo.subscriptions[pending.id].status == SubscriptionStatus.PENDING

    @pytest.mark.asyncio
    async def test_canceled_keeps_subscription_pending(self, harness: Harness, customer: User) -> None:
        subscription = harness.subscriptions_repo.add(
            make_subscription(customer.id, status=SubscriptionStatus.PENDING),
        )
        payment = await harness.ledger.open(subscription.id, subscription.price, PaymentSubject.SUBSCRIPTION)

        await harness.reconciler.handle(
            _event("payment.canceled", {"subscriptionId": subscription.id, "paymentId": payment.id}),
        )

        assert harness.subscriptions_repo.subscriptions[subscription.id].status == SubscriptionStatus.PENDING


class TestSimulateSuccess:
    """Тесты ручного подтверждения оплаты."""

    @pytest.mark.asyncio
    async def test_simulate_marks_paid(self, harness: Harness, order_payment) -> None:
        order, payment = order_payment

        result = await harness.reconciler.simulate_success(payment.id)

        assert result.status == PaymentStatus.PAID
        assert harness.orders_repo.orders[order.id].status == OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_simulate_then_webhook(self, harness: Harness, order_payment) -> None:
        """Ручное подтверждение и вебхук вместе дают одну оплату."""
        order, payment = order_payment
        await harness.reconciler.simulate_success(payment.id)

        result = await harness.reconciler.handle(_event("payment.succeeded", _order_meta(order, payment)))

        assert result.success is True
        assert len(harness.event_bus.of_type(EventTypes.ORDER_PAID)) == 1

    @pytest.mark.asyncio
    async def test_simulate_processed(self, harness: Harness, order_payment) -> None:
        order, payment = order_payment
        await harness.reconciler.simulate_success(payment.id)

        result = await harness.reconciler.simulate_success(payment.id)

        assert result.message == "Платёж уже обработан"
        assert result.status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_simulate_missing(self, harness: Harness) -> None:
        with pytest.raises(NotFoundError):
            await harness.reconciler.simulate_success("ghost")
