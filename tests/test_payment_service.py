"""Tests for payment initiation."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
import requests
import stripe

from conftest import FakeResponse
from storefront.data.models.order import OrderModel
from storefront.domain.errors import (
    GatewayUnavailable,
    InvalidStateTransition,
    NotFound,
    PersistenceConflict,
    ValidationError,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.gateways import build_gateways
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService


@pytest.fixture
def payments(catalog, lock_service, notifications):
    return PaymentService(
        catalog,
        gateways=build_gateways(),
        lock_service=lock_service,
        notification_service=notifications,
    )


@pytest.fixture
def order_id(catalog, notifications):
    order = OrderService(catalog, notification_service=notifications).create_order(
        1, line_items=[{"service_id": "cleaning", "quantity": 2}]
    )
    return order["id"]


@pytest.fixture
def moyasar_http(monkeypatch):
    calls = []

    def fake_post(url, json=None, auth=None, timeout=None):
        calls.append(json)
        return FakeResponse(201, {"id": f"pay_{len(calls)}", "status": "initiated"})

    monkeypatch.setattr(requests, "post", fake_post)
    return calls


def reload(db, order_id):
    db.expire_all()
    return db.get(OrderModel, order_id)


class TestInitiate:
    def test_redirect_gateway(self, payments, order_id, moyasar_http, catalog, lock_service):
        result = payments.initiate(order_id, 1, "moyasar")

        assert result["gateway"] == "moyasar"
        assert result["correlation_id"] == "pay_1"
        assert result["redirect_url"].endswith("/pay_1")
        assert result["status"] == "RECEIVED"

        order = reload(catalog, order_id)
        assert order.moyasar_payment_id == "pay_1"
        assert order.payment_method == "moyasar"
        assert order.version == 2
        payment = order.payments[0]
        assert payment.gateway == "moyasar"
        assert payment.status == "PENDING"
        assert payment.amount == Decimal("200.00")
        assert payment.currency == "SAR"
        assert OrderRepo(catalog).last_tracking(order_id).title == "Payment initiated"

        assert lock_service.acquired == [order_id]
        assert lock_service.released == [order_id]

    def test_second_initiation_reuses_remote_payment(self, payments, order_id, moyasar_http, catalog):
        first = payments.initiate(order_id, 1, "moyasar")
        second = payments.initiate(order_id, 1, "moyasar")

        assert second["correlation_id"] == first["correlation_id"]
        assert second["redirect_url"] == first["redirect_url"]
        assert len(moyasar_http) == 1
        assert len(reload(catalog, order_id).payments) == 1

    def test_gateway_down_persists_nothing(self, payments, order_id, catalog, lock_service, monkeypatch):
        def fake_post(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(requests, "post", fake_post)

        with pytest.raises(GatewayUnavailable):
            payments.initiate(order_id, 1, "moyasar")

        order = reload(catalog, order_id)
        assert order.moyasar_payment_id is None
        assert order.payment_method is None
        assert order.payments == []
        assert lock_service.held == {}

    def test_concurrent_initiation_conflicts(self, payments, order_id, moyasar_http, lock_service):
        lock_service.held[order_id] = "other-request"

        with pytest.raises(PersistenceConflict):
            payments.initiate(order_id, 1, "moyasar")
        assert moyasar_http == []

    def test_paid_order_rejected(self, payments, order_id, catalog, moyasar_http):
        order = catalog.get(OrderModel, order_id)
        order.payment_status = "COMPLETED"
        order.status = "CONFIRMED"
        catalog.commit()

        with pytest.raises(ValidationError):
            payments.initiate(order_id, 1, "moyasar")

    def test_terminal_order_rejected(self, payments, order_id, catalog, moyasar_http):
        catalog.get(OrderModel, order_id).status = "CANCELLED"
        catalog.commit()

        with pytest.raises(InvalidStateTransition):
            payments.initiate(order_id, 1, "moyasar")
        assert moyasar_http == []

    def test_switching_method_rejected(self, payments, order_id, moyasar_http):
        payments.initiate(order_id, 1, "moyasar")
        with pytest.raises(ValidationError):
            payments.initiate(order_id, 1, "stripe")

    def test_unknown_method(self, payments, order_id):
        with pytest.raises(ValidationError):
            payments.initiate(order_id, 1, "cash")

    def test_foreign_order(self, payments, order_id, moyasar_http):
        with pytest.raises(NotFound):
            payments.initiate(order_id, 2, "moyasar")

    def test_bank_transfer_goes_to_receipt_flow(self, payments, order_id, catalog):
        result = payments.initiate(order_id, 1, "bank_transfer", {"receipt_ref": "receipts/42.pdf"})

        assert result["status"] == "PENDING_ADMIN_APPROVAL"
        assert result["bank_transfer_receipt"] == "receipts/42.pdf"


class TestSynchronousCardResult:
    def test_succeeded_applied_through_state_machine(self, payments, order_id, catalog, notifications, monkeypatch):
        def fake_create(**kwargs):
            return SimpleNamespace(id="pi_9", status="succeeded", client_secret="pi_9_secret")

        monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)

        result = payments.initiate(order_id, 1, "stripe", {"payment_method": "pm_card_visa"})

        assert result["client_secret"] == "pi_9_secret"
        assert result["status"] == "CONFIRMED"
        assert result["payment_status"] == "COMPLETED"
        order = reload(catalog, order_id)
        assert order.stripe_payment_intent_id == "pi_9"
        assert order.payments[0].status == "COMPLETED"
        assert notifications.status_changes[-1][2:] == ("CONFIRMED", "COMPLETED")

    def test_requires_action_stays_pending(self, payments, order_id, catalog, monkeypatch):
        monkeypatch.setattr(
            stripe.PaymentIntent,
            "create",
            lambda **kwargs: SimpleNamespace(id="pi_3", status="requires_action", client_secret="s"),
        )
        result = payments.initiate(order_id, 1, "stripe")
        assert result["payment_status"] == "PENDING"
        assert reload(catalog, order_id).status == "RECEIVED"


class TestConfirmRedirect:
    def test_fetches_remote_status(self, payments, order_id, moyasar_http, catalog, monkeypatch):
        payments.initiate(order_id, 1, "moyasar")

        def fake_get(url, auth=None, timeout=None):
            assert url.endswith("/payments/pay_1")
            return FakeResponse(200, {"id": "pay_1", "status": "paid", "metadata": {"order_id": str(order_id)}})

        monkeypatch.setattr(requests, "get", fake_get)

        result = payments.confirm_redirect(order_id, 1)

        assert result["outcome"] == "APPLY"
        assert result["order_status"] == "PROCESSING"
        assert reload(catalog, order_id).payment_status == "COMPLETED"

    def test_not_started(self, payments, order_id):
        with pytest.raises(ValidationError):
            payments.confirm_redirect(order_id, 1)


@pytest.fixture
def stripe_api(monkeypatch):
    """PaymentIntent.create jak w Stripe: klucz przypiety do parametrow pierwszego requestu."""
    seen = {}

    def fake_create(idempotency_key=None, api_key=None, **params):
        if idempotency_key in seen and seen[idempotency_key] != params:
            raise stripe.IdempotencyError("Keys for idempotent requests can only be used with the same parameters")
        seen[idempotency_key] = params
        if params.get("payment_method") == "pm_card_declined":
            raise stripe.CardError("Your card was declined.", "payment_method", "card_declined")
        return SimpleNamespace(id=f"pi_{len(seen)}", status="succeeded", client_secret=f"pi_{len(seen)}_secret")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    return seen


class TestDeclinedCardRetry:
    def test_new_card_after_decline_succeeds(self, payments, order_id, catalog, lock_service, stripe_api):
        with pytest.raises(ValidationError):
            payments.initiate(order_id, 1, "stripe", {"payment_method": "pm_card_declined"})

        order = reload(catalog, order_id)
        assert order.stripe_payment_intent_id is None
        assert order.payment_method is None
        assert order.payments == []
        assert lock_service.held == {}

        result = payments.initiate(order_id, 1, "stripe", {"payment_method": "pm_card_visa"})

        assert result["status"] == "CONFIRMED"
        assert result["payment_status"] == "COMPLETED"
        assert len(stripe_api) == 2
        assert reload(catalog, order_id).payments[0].status == "COMPLETED"

    def test_same_declined_card_stays_declined(self, payments, order_id, stripe_api):
        for _ in range(2):
            with pytest.raises(ValidationError):
                payments.initiate(order_id, 1, "stripe", {"payment_method": "pm_card_declined"})
        assert len(stripe_api) == 1
