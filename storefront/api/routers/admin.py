# storefront/api/routers/admin.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    AdminDecisionIn,
    AdminTrackingOut,
    BankTransferOut,
    CouponActiveIn,
    CouponCreate,
    CouponOut,
    TrackingUpdateIn,
)
from storefront.services.bank_transfer_service import BankTransferService
from storefront.services.coupon_service import CouponService
from storefront.services.order_admin_service import OrderAdminService

# uwierzytelnianie admina jest poza tym serwisem, admin_id przychodzi w body
router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/bank-transfers", response_model=list[BankTransferOut])
def list_bank_transfers(
    status: str | None = Query(None),
    db: Session = Depends(get_db),
):
    svc = BankTransferService(db)
    try:
        return svc.list_bank_transfers(status)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/bank-transfers/{order_id}/decision", response_model=BankTransferOut)
def decide_bank_transfer(
    order_id: int,
    payload: AdminDecisionIn,
    db: Session = Depends(get_db),
):
    svc = BankTransferService(db)
    try:
        return svc.admin_decide(order_id, payload.admin_id, payload.approve, payload.notes)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/orders/{order_id}/tracking", response_model=AdminTrackingOut)
def add_tracking(
    order_id: int,
    payload: TrackingUpdateIn,
    db: Session = Depends(get_db),
):
    svc = OrderAdminService(db)
    try:
        return svc.add_tracking(
            order_id,
            payload.admin_id,
            payload.status.value,
            payload.title,
            payload.description,
        )
    except StorefrontError as e:
        raise http_error(e)


@router.post("/coupons", response_model=CouponOut, status_code=201)
def create_coupon(payload: CouponCreate, db: Session = Depends(get_db)):
    svc = CouponService(db)
    try:
        return svc.create_coupon(**payload.model_dump())
    except StorefrontError as e:
        raise http_error(e)


@router.get("/coupons", response_model=list[CouponOut])
def list_coupons(
    active: bool | None = Query(None),
    db: Session = Depends(get_db),
):
    return CouponService(db).list_coupons(active)


@router.patch("/coupons/{coupon_id}", response_model=CouponOut)
def set_coupon_active(
    coupon_id: int,
    payload: CouponActiveIn,
    db: Session = Depends(get_db),
):
    svc = CouponService(db)
    try:
        return svc.set_active(coupon_id, payload.active)
    except StorefrontError as e:
        raise http_error(e)
