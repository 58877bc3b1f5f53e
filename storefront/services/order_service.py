# storefront/services/order_service.py
import secrets
import string
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel, OrderItemModel
from storefront.data.models.order_tracking import OrderTrackingModel
from storefront.domain.errors import NotFound, PersistenceConflict, StockExceeded, ValidationError
from storefront.domain.state_machine import OrderStatus, PaymentStatus
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.service_repo import ServiceRepo
from storefront.services.coupon_service import CouponService
from storefront.services.notification_service import NotificationService
from storefront.services.transitions import DEFAULT_TITLES
from storefront.utils.logging import get_logger
from storefront.utils.money import ZERO, as_utc, round_money, utc_now

logger = get_logger(__name__)

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number() -> str:
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def serialize_order(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "total_amount": round_money(order.total_amount),
        "discount_amount": round_money(order.discount_amount or ZERO),
        "amount_due": round_money(order.amount_due),
        "coupon_code": order.coupon_code,
        "bank_transfer_status": order.bank_transfer_status,
        "notes": order.notes,
        "scheduled_date": as_utc(order.scheduled_date),
        "created_at": as_utc(order.created_at),
        "items": [
            {
                "service_id": i.service_id,
                "option_id": i.option_id,
                "quantity": i.quantity,
                "unit_price": round_money(i.unit_price),
                "total_price": round_money(i.total_price),
                "notes": i.notes,
            }
            for i in order.items
        ],
    }


def serialize_tracking(entry: OrderTrackingModel) -> Dict[str, Any]:
    return {
        "status": entry.status,
        "title": entry.title,
        "description": entry.description,
        "admin_id": entry.admin_id,
        "timestamp": as_utc(entry.timestamp),
    }


def _field(line, name, default=None):
    if isinstance(line, dict):
        return line.get(name, default)
    return getattr(line, name, default)


class OrderService:
    """
    Skladanie zamowienia z koszyka (albo z listy pozycji klienta).
    Zamowienie + pozycje + tracking + kupon + magazyn + czyszczenie koszyka = jedna transakcja.
    """

    def __init__(self, db: Session, notification_service: NotificationService | None = None):
        self.db = db
        self.repo = OrderRepo(db)
        self.carts = CartRepo(db)
        self.services = ServiceRepo(db)
        self.coupons = CouponService(db)
        self.notification_service = notification_service or NotificationService()

    def create_order(
        self,
        user_id: int,
        line_items: Iterable | None = None,
        notes: str | None = None,
        scheduled_date: datetime | None = None,
        coupon_code: str | None = None,
    ) -> Dict[str, Any]:
        try:
            cart = self.carts.get_cart_by_user(user_id)

            if line_items is None:
                cart_items = self.carts.get_cart_items(cart.id) if cart else []
                source = [
                    {"service_id": i.service_id, "option_id": i.option_id, "quantity": i.quantity}
                    for i in cart_items
                ]
            else:
                source = list(line_items)

            if not source:
                raise ValidationError("Koszyk jest pusty")

            # ceny zawsze z katalogu, nigdy od klienta
            items = [self._price_line(line) for line in source]
            total = round_money(sum((i.total_price for i in items), Decimal("0.00")))

            order = OrderModel(
                order_number=generate_order_number(),
                user_id=user_id,
                total_amount=total,
                discount_amount=ZERO,
                status=OrderStatus.RECEIVED.value,
                payment_status=PaymentStatus.PENDING.value,
                notes=notes,
                scheduled_date=scheduled_date,
                version=1,
                items=items,
            )

            if coupon_code:
                coupon, quote = self.coupons.redeem(coupon_code, total, utc_now())
                order.coupon_id = coupon.id
                order.coupon_code = coupon.code
                order.discount_amount = quote.discount

            self.repo.add_order(order)
            self.repo.add_tracking(
                OrderTrackingModel(
                    order_id=order.id,
                    status=OrderStatus.RECEIVED.value,
                    title=DEFAULT_TITLES[OrderStatus.RECEIVED],
                )
            )

            if cart:
                self.carts.clear_items(cart.id)
                if self.carts.update_cart_version(cart.id, cart.version) == 0:
                    raise PersistenceConflict("Koszyk zostal zmodyfikowany podczas skladania zamowienia")

            self.repo.commit()

        except IntegrityError as e:
            self.repo.rollback()
            logger.warning(f"Order creation conflict for user {user_id}: {e.orig}")
            raise PersistenceConflict("Nie udalo sie zapisac zamowienia, sprobuj ponownie") from e
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order.order_number} created for user {user_id}, total {total}")

        # poza transakcja, best-effort
        self.notification_service.send_order_confirmation(user_id, order.order_number)

        return serialize_order(order)

    def _price_line(self, line) -> OrderItemModel:
        service_id = _field(line, "service_id")
        option_id = _field(line, "option_id")
        quantity = _field(line, "quantity", 1)

        if not service_id:
            raise ValidationError("Brak identyfikatora uslugi")
        if quantity is None or int(quantity) < 1:
            raise ValidationError("Ilosc musi byc wieksza niz 0")
        quantity = int(quantity)

        # autorytatywny odczyt z bazy, niezaleznie od cache koszyka
        service = self.services.get_service_fresh(service_id)
        if service is None:
            raise ValidationError(f"Usluga {service_id} nie istnieje")
        if not service.active or not service.available:
            raise ValidationError(f"Usluga {service.title} jest niedostepna")

        unit_price = service.base_price
        if option_id:
            option = self.services.get_option(option_id)
            if option is None or option.service_id != service.id:
                raise ValidationError("Opcja nie nalezy do tej uslugi")
            unit_price = option.price

        if service.stock is not None:
            remaining = service.stock
            if self.services.decrement_stock(service.id, quantity) == 0:
                raise StockExceeded(service.title, remaining)

        unit_price = round_money(unit_price)
        return OrderItemModel(
            service_id=service.id,
            option_id=option_id or None,
            quantity=quantity,
            unit_price=unit_price,
            total_price=round_money(unit_price * quantity),
            notes=_field(line, "notes"),
        )

    # query
    def get_owned_order(self, order_id: int, user_id: int) -> OrderModel:
        order = self.repo.get_order(order_id)
        # cudze zamowienie wyglada jak nieistniejace
        if not order or order.user_id != user_id:
            raise NotFound("Zamowienie nie istnieje")
        return order

    def get_order(self, order_id: int, user_id: int) -> Dict[str, Any]:
        return serialize_order(self.get_owned_order(order_id, user_id))

    def list_orders(self, user_id: int) -> list[Dict[str, Any]]:
        return [serialize_order(o) for o in self.repo.list_user_orders(user_id)]

    def get_tracking(self, order_id: int, user_id: int) -> Dict[str, Any]:
        order = self.get_owned_order(order_id, user_id)
        return {
            "order_number": order.order_number,
            "current_status": order.status,
            "tracking": [serialize_tracking(t) for t in self.repo.get_tracking(order.id)],
        }
