# storefront/services/coupon_service.py
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.coupon import CouponModel
from storefront.domain.coupons import FIXED, PERCENTAGE, CouponQuote, evaluate_coupon, normalize_code
from storefront.domain.errors import CouponRejected, CouponRejection, NotFound, ValidationError
from storefront.repos.coupon_repo import CouponRepo
from storefront.utils.logging import get_logger
from storefront.utils.money import as_utc, to_decimal, utc_now

logger = get_logger(__name__)


class CouponService:
    def __init__(self, db: Session):
        self.repo = CouponRepo(db)

    def validate(self, code: str, order_total, now: datetime | None = None) -> CouponQuote:
        """Dry-run: nic nie zapisuje, uzytkownik moze probowac wielu kodow."""
        if to_decimal(order_total) < 0:
            raise ValidationError("Kwota zamowienia nie moze byc ujemna")
        coupon = self.repo.get_by_code(normalize_code(code))
        return evaluate_coupon(coupon, order_total, now or utc_now())

    def redeem(self, code: str, order_total, now: datetime | None = None) -> tuple[CouponModel, CouponQuote]:
        """
        Walidacja + zuzycie kuponu w transakcji wywolujacego (tworzenie zamowienia).
        Bez commita - commit/rollback robi OrderService.
        """
        coupon = self.repo.get_by_code(normalize_code(code))
        quote = evaluate_coupon(coupon, order_total, now or utc_now())

        if self.repo.increment_usage(coupon.id) == 0:
            # ktos zuzyl ostatnie uzycie miedzy odczytem a zapisem
            raise CouponRejected(CouponRejection.EXHAUSTED, "Coupon usage limit reached")

        logger.info(f"Coupon {coupon.code} redeemed, discount {quote.discount}")
        return coupon, quote

    # --- admin ---
    def create_coupon(
        self,
        code: str,
        name: str,
        discount_type: str,
        discount_value,
        valid_until: datetime,
        valid_from: datetime | None = None,
        description: str | None = None,
        min_amount=None,
        max_discount=None,
        max_uses: int | None = None,
        active: bool = True,
    ) -> CouponModel:
        discount_type = discount_type.upper()
        if discount_type not in (PERCENTAGE, FIXED):
            raise ValidationError("Nieprawidlowy typ rabatu")
        value = to_decimal(discount_value)
        if value < 0 or (discount_type == PERCENTAGE and value > 100):
            raise ValidationError("Nieprawidlowa wartosc rabatu")
        valid_from = as_utc(valid_from) or utc_now()
        valid_until = as_utc(valid_until)
        if valid_until <= valid_from:
            raise ValidationError("Data konca musi byc po dacie poczatku")

        coupon = CouponModel(
            code=normalize_code(code),
            name=name,
            description=description,
            discount_type=discount_type,
            discount_value=value,
            min_amount=_opt_decimal(min_amount),
            max_discount=_opt_decimal(max_discount),
            max_uses=max_uses,
            used_count=0,
            valid_from=valid_from,
            valid_until=valid_until,
            active=active,
        )
        try:
            self.repo.add(coupon)
            self.repo.db.commit()
        except IntegrityError as e:
            self.repo.db.rollback()
            raise ValidationError(f"Kupon {coupon.code} juz istnieje") from e

        logger.info(f"Coupon {coupon.code} created")
        return coupon

    def list_coupons(self, active: bool | None = None) -> list[CouponModel]:
        return self.repo.list_coupons(active)

    def set_active(self, coupon_id: int, active: bool) -> CouponModel:
        coupon = self.repo.get(coupon_id)
        if not coupon:
            raise NotFound("Kupon nie istnieje")
        coupon.active = active
        self.repo.db.commit()
        return coupon


def _opt_decimal(value) -> Decimal | None:
    return None if value is None else to_decimal(value)
