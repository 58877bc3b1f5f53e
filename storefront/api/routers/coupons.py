# storefront/api/routers/coupons.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.errors import http_error
from storefront.data.database import get_db
from storefront.domain.coupons import normalize_code
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import CouponQuoteOut, CouponValidateIn
from storefront.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("/validate", response_model=CouponQuoteOut)
def validate_coupon(payload: CouponValidateIn, db: Session = Depends(get_db)):
    """Podglad rabatu; nic nie zapisuje, uzycie liczone dopiero przy zamowieniu."""
    svc = CouponService(db)
    try:
        quote = svc.validate(payload.code, payload.order_total)
    except StorefrontError as e:
        raise http_error(e)
    return {"code": normalize_code(payload.code), "discount": quote.discount, "new_total": quote.new_total}
