"""Notifications are fire-and-forget: a broken queue never undoes a commit."""

import json

import pytest

from conftest import MOYASAR_SECRET, hmac_hex
from storefront.data.models.order import OrderModel
from storefront.data.models.payment import PaymentModel
from storefront.repos.order_repo import OrderRepo
from storefront.services import notification_service
from storefront.services.gateways import build_gateways
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.reconciliation import ReconciliationEngine


@pytest.fixture
def broken_queue(monkeypatch):
    calls = []

    def failing_delay(*args, **kwargs):
        calls.append(args)
        raise ConnectionError("broker unreachable")

    monkeypatch.setattr(notification_service.send_order_confirmation_task, "delay", failing_delay)
    monkeypatch.setattr(notification_service.send_status_change_task, "delay", failing_delay)
    return calls


class TestNotificationService:
    def test_enqueue_failure_is_logged(self, broken_queue, caplog):
        NotificationService().send_order_confirmation(1, "ORD-1")
        NotificationService().send_status_change(1, "ORD-1", "CONFIRMED", "COMPLETED")

        assert len(broken_queue) == 2
        assert "[NOTIFICATION] enqueue" in caplog.text


class TestBrokenQueueKeepsCommits:
    def test_order_is_created(self, catalog, session_factory, broken_queue):
        order = OrderService(catalog, notification_service=NotificationService()).create_order(
            1, line_items=[{"service_id": "ac-repair", "quantity": 2}]
        )

        assert broken_queue == [(1, order["order_number"])]
        other = session_factory()
        try:
            stored = other.get(OrderModel, order["id"])
            assert stored is not None
            assert stored.status == "RECEIVED"
        finally:
            other.close()

    def test_webhook_transition_is_committed(self, catalog, session_factory, broken_queue):
        order = OrderService(catalog, notification_service=NotificationService()).create_order(
            1, line_items=[{"service_id": "cleaning"}]
        )
        row = catalog.get(OrderModel, order["id"])
        row.moyasar_payment_id = "pay_1"
        row.payment_method = "moyasar"
        catalog.add(PaymentModel(order_id=row.id, amount=row.amount_due, currency="SAR", gateway="moyasar"))
        catalog.commit()

        body = json.dumps(
            {"type": "payment_paid", "data": {"id": "pay_1", "status": "paid", "metadata": {"order_id": str(row.id)}}}
        ).encode("utf-8")
        engine = ReconciliationEngine(catalog, build_gateways(), NotificationService())
        result = engine.handle_webhook("moyasar", body, hmac_hex(MOYASAR_SECRET, body))

        assert result.order_status == "PROCESSING"
        assert len(broken_queue) == 2
        other = session_factory()
        try:
            stored = other.get(OrderModel, row.id)
            assert stored.status == "PROCESSING"
            assert stored.payment_status == "COMPLETED"
            assert OrderRepo(other).last_tracking(row.id).status == "PROCESSING"
        finally:
            other.close()
