# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.errors import http_error
from storefront.data.database import get_db
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import BankReceiptIn, BankTransferOut, PaymentInitiateIn, WebhookResultOut
from storefront.services.bank_transfer_service import BankTransferService
from storefront.services.gateways import build_gateways
from storefront.services.lock_service import LockService
from storefront.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def get_gateways():
    return build_gateways()


def get_lock_service():
    return LockService()


def get_service(
    db: Session = Depends(get_db),
    gateways=Depends(get_gateways),
    lock_service=Depends(get_lock_service),
):
    return PaymentService(db, gateways=gateways, lock_service=lock_service)


@router.post("/{order_id}")
def initiate_payment(
    order_id: int,
    payload: PaymentInitiateIn,
    user_id: int = Query(..., gt=0),
    svc: PaymentService = Depends(get_service),
):
    """
    Start platnosci wybrana metoda.
    Zwraca redirect_url / iframe_url / client_secret; dla przelewu stan zamowienia.
    """
    try:
        return svc.initiate(order_id, user_id, payload.method.value, payload.billing_data)
    except StorefrontError as e:
        raise http_error(e)


@router.get("/{order_id}/return", response_model=WebhookResultOut)
def confirm_redirect(
    order_id: int,
    user_id: int = Query(..., gt=0),
    svc: PaymentService = Depends(get_service),
):
    try:
        return svc.confirm_redirect(order_id, user_id)
    except StorefrontError as e:
        raise http_error(e)


@router.post("/{order_id}/bank-transfer", response_model=BankTransferOut)
def submit_bank_transfer(
    order_id: int,
    payload: BankReceiptIn,
    user_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    svc = BankTransferService(db)
    try:
        return svc.submit_receipt(order_id, user_id, payload.receipt_ref)
    except StorefrontError as e:
        raise http_error(e)
