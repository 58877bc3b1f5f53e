"""Tests for the shared order/payment state machine."""

import pytest

from storefront.domain.state_machine import (
    OrderStatus,
    Outcome,
    PaymentStatus,
    can_transition,
    is_terminal,
    plan_order_transition,
    plan_payment_event,
)


class TestOrderTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.RECEIVED, OrderStatus.PENDING_ADMIN_APPROVAL),
            (OrderStatus.RECEIVED, OrderStatus.CONFIRMED),
            (OrderStatus.PENDING_ADMIN_APPROVAL, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
            (OrderStatus.PROCESSING, OrderStatus.COMPLETED),
            (OrderStatus.PROCESSING, OrderStatus.REFUNDED),
            (OrderStatus.PENDING_ADMIN_APPROVAL, OrderStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        plan = plan_order_transition(current, target)
        assert plan.outcome == Outcome.APPLY
        assert plan.order_status == target

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.COMPLETED, OrderStatus.PROCESSING),
            (OrderStatus.CANCELLED, OrderStatus.CONFIRMED),
            (OrderStatus.REFUNDED, OrderStatus.COMPLETED),
            (OrderStatus.PROCESSING, OrderStatus.RECEIVED),
            (OrderStatus.RECEIVED, OrderStatus.REFUNDED),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        plan = plan_order_transition(current, target)
        assert plan.outcome == Outcome.REJECT
        assert plan.order_status == current
        assert not plan.changes_state

    def test_same_state_is_noop(self):
        plan = plan_order_transition("PROCESSING", "PROCESSING")
        assert plan.outcome == Outcome.NOOP

    def test_terminal_states(self):
        assert {s for s in OrderStatus if is_terminal(s)} == {
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
            OrderStatus.REFUNDED,
        }


class TestPaymentEvents:
    def test_success_applies(self):
        plan = plan_payment_event("RECEIVED", "PENDING", OrderStatus.CONFIRMED, PaymentStatus.COMPLETED)
        assert plan.outcome == Outcome.APPLY
        assert plan.order_status == OrderStatus.CONFIRMED
        assert plan.payment_status == PaymentStatus.COMPLETED

    def test_redelivery_is_noop(self):
        plan = plan_payment_event("CONFIRMED", "COMPLETED", OrderStatus.CONFIRMED, PaymentStatus.COMPLETED)
        assert plan.outcome == Outcome.NOOP

    def test_failure_after_success_rejected(self):
        plan = plan_payment_event("CONFIRMED", "COMPLETED", OrderStatus.CANCELLED, PaymentStatus.FAILED)
        assert plan.outcome == Outcome.REJECT
        assert plan.order_status == OrderStatus.CONFIRMED
        assert plan.payment_status == PaymentStatus.COMPLETED

    def test_pending_after_success_rejected(self):
        plan = plan_payment_event("PROCESSING", "COMPLETED", OrderStatus.RECEIVED, PaymentStatus.PENDING)
        assert plan.outcome == Outcome.REJECT

    def test_success_on_cancelled_order_rejected(self):
        plan = plan_payment_event("CANCELLED", "PENDING", OrderStatus.CONFIRMED, PaymentStatus.COMPLETED)
        assert plan.outcome == Outcome.REJECT

    def test_order_ahead_only_updates_payment(self):
        # admin juz zakonczyl zamowienie, webhook "paid" przychodzi pozniej
        plan = plan_payment_event("COMPLETED", "PENDING", OrderStatus.PROCESSING, PaymentStatus.COMPLETED)
        assert plan.outcome == Outcome.APPLY
        assert plan.order_status == OrderStatus.COMPLETED
        assert plan.payment_status == PaymentStatus.COMPLETED

    def test_refund_after_success(self):
        plan = plan_payment_event("PROCESSING", "COMPLETED", OrderStatus.REFUNDED, PaymentStatus.REFUNDED)
        assert plan.outcome == Outcome.APPLY
        assert plan.order_status == OrderStatus.REFUNDED

    def test_refund_of_unpaid_rejected(self):
        plan = plan_payment_event("RECEIVED", "PENDING", OrderStatus.REFUNDED, PaymentStatus.REFUNDED)
        assert plan.outcome == Outcome.REJECT
