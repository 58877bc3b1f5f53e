"""Tests for order assembly."""

import re
from decimal import Decimal

import pytest

from storefront.data.models.coupon import CouponModel
from storefront.data.models.service import ServiceModel
from storefront.domain.errors import CouponRejected, NotFound, StockExceeded, ValidationError
from storefront.domain.state_machine import OrderStatus, PaymentStatus
from storefront.services.cart_service import CartService
from storefront.services.order_service import OrderService, generate_order_number
from storefront.services.service_cache import NullServiceCache


@pytest.fixture
def carts(catalog):
    return CartService(catalog, cache=NullServiceCache())


@pytest.fixture
def orders(catalog, notifications):
    return OrderService(catalog, notification_service=notifications)


def stock_of(db, service_id):
    db.expire_all()
    return db.get(ServiceModel, service_id).stock


class TestCreateOrderFromCart:
    def test_prices_frozen_and_cart_cleared(self, carts, orders, notifications, catalog):
        carts.add_item(1, "cleaning", quantity=2)
        carts.add_item(1, "cleaning", option_id="cleaning-deep")

        order = orders.create_order(1, notes="Gate code 1234")

        assert order["status"] == OrderStatus.RECEIVED.value
        assert order["payment_status"] == PaymentStatus.PENDING.value
        assert order["total_amount"] == Decimal("350.00")
        assert order["amount_due"] == Decimal("350.00")
        assert order["notes"] == "Gate code 1234"
        assert sorted(i["unit_price"] for i in order["items"]) == [Decimal("100.00"), Decimal("150.00")]

        assert carts.get_cart(1)["items"] == []
        assert notifications.confirmations == [(1, order["order_number"])]

        tracking = orders.get_tracking(order["id"], 1)
        assert tracking["current_status"] == "RECEIVED"
        assert [t["status"] for t in tracking["tracking"]] == ["RECEIVED"]

    def test_price_change_does_not_touch_existing_order(self, carts, orders, catalog):
        carts.add_item(1, "cleaning")
        order = orders.create_order(1)

        catalog.get(ServiceModel, "cleaning").base_price = Decimal("999.00")
        catalog.commit()

        again = orders.get_order(order["id"], 1)
        assert again["items"][0]["unit_price"] == Decimal("100.00")
        assert again["total_amount"] == Decimal("100.00")

    def test_empty_cart_rejected(self, orders):
        with pytest.raises(ValidationError):
            orders.create_order(1)

    def test_stock_decremented(self, carts, orders, catalog):
        carts.add_item(1, "ac-repair", quantity=3)
        orders.create_order(1)
        assert stock_of(catalog, "ac-repair") == 2

    def test_failed_validation_leaves_cart_and_stock(self, carts, orders, catalog):
        carts.add_item(1, "ac-repair", quantity=3)
        carts.add_item(1, "cleaning")

        # ktos inny wykupil magazyn po dodaniu do koszyka
        catalog.get(ServiceModel, "ac-repair").stock = 2
        catalog.commit()

        with pytest.raises(StockExceeded) as exc:
            orders.create_order(1)
        assert exc.value.remaining == 2

        assert len(carts.get_cart(1)["items"]) == 2
        assert stock_of(catalog, "ac-repair") == 2
        assert orders.list_orders(1) == []

    def test_stock_never_negative_across_orders(self, carts, orders, catalog):
        carts.add_item(1, "ac-repair", quantity=3)
        carts.add_item(2, "ac-repair", quantity=3)

        orders.create_order(1)
        with pytest.raises(StockExceeded):
            orders.create_order(2)

        assert stock_of(catalog, "ac-repair") == 2

    def test_service_deactivated_after_adding(self, carts, orders, catalog):
        carts.add_item(1, "cleaning")
        catalog.get(ServiceModel, "cleaning").available = False
        catalog.commit()

        with pytest.raises(ValidationError):
            orders.create_order(1)


class TestCreateOrderFromLineItems:
    def test_client_prices_are_ignored(self, orders):
        order = orders.create_order(
            1,
            line_items=[{"service_id": "cleaning", "quantity": 2, "unit_price": "1.00"}],
        )
        assert order["total_amount"] == Decimal("200.00")

    def test_clears_cart_too(self, carts, orders):
        carts.add_item(1, "ac-repair")
        orders.create_order(1, line_items=[{"service_id": "cleaning"}])
        assert carts.get_cart(1)["items"] == []

    def test_unknown_service(self, orders):
        with pytest.raises(ValidationError):
            orders.create_order(1, line_items=[{"service_id": "nope", "quantity": 1}])

    def test_option_must_belong_to_service(self, orders):
        with pytest.raises(ValidationError):
            orders.create_order(1, line_items=[{"service_id": "cleaning", "option_id": "ac-gas"}])


class TestCoupons:
    def test_coupon_applied_and_counted(self, orders, make_coupon, catalog):
        make_coupon(max_discount=Decimal("15"))
        order = orders.create_order(1, line_items=[{"service_id": "cleaning"}], coupon_code=" save20 ")

        assert order["coupon_code"] == "SAVE20"
        assert order["discount_amount"] == Decimal("15.00")
        assert order["amount_due"] == Decimal("85.00")

        catalog.expire_all()
        assert catalog.query(CouponModel).one().used_count == 1

    def test_rejected_coupon_rolls_back_everything(self, carts, orders, make_coupon, catalog):
        make_coupon(min_amount=Decimal("500"))
        carts.add_item(1, "ac-repair", quantity=2)

        with pytest.raises(CouponRejected):
            orders.create_order(1, coupon_code="SAVE20")

        assert stock_of(catalog, "ac-repair") == 5
        assert len(carts.get_cart(1)["items"]) == 1


class TestQueries:
    def test_foreign_order_looks_missing(self, orders):
        order = orders.create_order(1, line_items=[{"service_id": "cleaning"}])
        with pytest.raises(NotFound):
            orders.get_order(order["id"], 2)
        with pytest.raises(NotFound):
            orders.get_tracking(order["id"], 2)

    def test_list_orders(self, orders):
        orders.create_order(1, line_items=[{"service_id": "cleaning"}])
        orders.create_order(1, line_items=[{"service_id": "ac-repair"}])
        orders.create_order(2, line_items=[{"service_id": "cleaning"}])
        assert len(orders.list_orders(1)) == 2


def test_order_number_format():
    numbers = {generate_order_number() for _ in range(50)}
    assert len(numbers) == 50
    for number in numbers:
        assert re.fullmatch(r"ORD-\d{13}-[A-Z0-9]{9}", number)
