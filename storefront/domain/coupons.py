# storefront/domain/coupons.py
"""Czysta logika kuponow - bez bazy, bez zapisu. Zuzycie liczy sie dopiero przy tworzeniu zamowienia."""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from storefront.domain.errors import CouponRejected, CouponRejection
from storefront.utils.money import ZERO, as_utc, round_money, to_decimal

PERCENTAGE = "PERCENTAGE"
FIXED = "FIXED"


@dataclass(frozen=True)
class CouponQuote:
    discount: Decimal
    new_total: Decimal


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def evaluate_coupon(coupon, order_total, now: datetime) -> CouponQuote:
    """
    Kolejnosc sprawdzen (pierwszy blad konczy):
    istnieje -> aktywny -> w oknie waznosci -> limit uzyc -> minimalna kwota.

    `coupon` to dowolny obiekt z polami modelu CouponModel (albo None).
    """
    if coupon is None:
        raise CouponRejected(CouponRejection.INVALID_CODE, "Invalid coupon code")

    if not coupon.active:
        raise CouponRejected(CouponRejection.INACTIVE, "Coupon is not active")

    now = as_utc(now)
    valid_from = as_utc(coupon.valid_from)
    valid_until = as_utc(coupon.valid_until)
    if (valid_from and now < valid_from) or (valid_until and now > valid_until):
        raise CouponRejected(CouponRejection.EXPIRED, "Coupon has expired")

    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        raise CouponRejected(CouponRejection.EXHAUSTED, "Coupon usage limit reached")

    total = to_decimal(order_total)
    if coupon.min_amount is not None and total < to_decimal(coupon.min_amount):
        raise CouponRejected(
            CouponRejection.BELOW_MINIMUM,
            f"Minimum order amount for this coupon is {coupon.min_amount}",
        )

    value = to_decimal(coupon.discount_value)
    if coupon.discount_type == PERCENTAGE:
        discount = total * value / Decimal(100)
        if coupon.max_discount is not None:
            discount = min(discount, to_decimal(coupon.max_discount))
    else:
        discount = min(value, total)

    discount = round_money(max(discount, ZERO))
    new_total = round_money(max(total - discount, ZERO))
    return CouponQuote(discount=discount, new_total=new_total)
