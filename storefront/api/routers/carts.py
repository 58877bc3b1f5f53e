# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import CartItemIn, CartItemUpdate, CartOut
from storefront.services.cart_service import CartService
from storefront.utils.retry import conflict_retry

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(db: Session):
    return CartService(db=db)


# przegrany wyscig wersji koszyka - ponawiamy cala operacje na swiezym stanie
@conflict_retry()
def _run(fn, *args, **kwargs):
    return fn(*args, **kwargs)


@router.get("/", response_model=CartOut)
def get_cart(
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    return svc.get_cart(user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: CartItemIn,
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return _run(
            svc.add_item,
            user_id=user_id,
            service_id=payload.service_id,
            option_id=payload.option_id,
            quantity=payload.quantity,
        )
    except StorefrontError as e:
        raise http_error(e)


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: CartItemUpdate,
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return _run(svc.update_quantity, user_id, item_id, payload.quantity)
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return _run(svc.remove_item, user_id, item_id)
    except StorefrontError as e:
        raise http_error(e)


@router.delete("/", response_model=CartOut)
def clear_cart(
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return _run(svc.clear, user_id)
    except StorefrontError as e:
        raise http_error(e)
