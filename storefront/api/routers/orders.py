# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import OrderCreate, OrderOut, TrackingOut
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    """
    Tworzy zamowienie z koszyka (albo z podanych pozycji).
    Wysyla powiadomienie asynchronicznie.
    """
    svc = get_service(db)
    try:
        return svc.create_order(
            user_id=user_id,
            line_items=[i.model_dump() for i in payload.items] if payload.items is not None else None,
            notes=payload.notes,
            scheduled_date=payload.scheduled_date,
            coupon_code=payload.coupon_code,
        )
    except StorefrontError as e:
        raise http_error(e)


@router.get("/", response_model=list[OrderOut])
def list_orders(
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return svc.list_orders(user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    """
    Pobiera szczegoly zamowienia.
    """
    svc = get_service(db)
    try:
        return svc.get_order(order_id, user_id)
    except StorefrontError as e:
        raise http_error(e)


@router.get("/{order_id}/tracking", response_model=TrackingOut)
def get_tracking(
    order_id: int,
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.get_tracking(order_id, user_id)
    except StorefrontError as e:
        raise http_error(e)
