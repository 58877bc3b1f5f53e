# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from storefront.domain.state_machine import OrderStatus, PaymentMethod


class CartItemIn(BaseModel):
    """Schema dla dodawania uslugi do koszyka."""

    service_id: str = Field(..., min_length=1, max_length=64, description="ID uslugi")
    option_id: Optional[str] = Field(None, max_length=64, description="ID opcji uslugi")
    quantity: int = Field(1, gt=0, description="Ilosc (musi byc > 0)")


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0, description="Nowa ilosc (musi byc > 0)")


class CartLineOut(BaseModel):
    id: int
    service_id: str
    option_id: Optional[str] = None
    title: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class CartOut(BaseModel):
    """Schema dla koszyka (response). Pusty koszyk ma cart_id = None."""

    cart_id: Optional[int] = None
    user_id: int
    items: List[CartLineOut]
    total: Decimal


class OrderLineIn(BaseModel):
    service_id: str = Field(..., min_length=1, max_length=64)
    option_id: Optional[str] = Field(None, max_length=64)
    quantity: int = Field(1, gt=0)
    notes: Optional[str] = None


class OrderCreate(BaseModel):
    """
    Schema dla tworzenia zamowienia.
    Bez `items` zamowienie powstaje z koszyka uzytkownika; ceny zawsze z katalogu.
    """

    items: Optional[List[OrderLineIn]] = None
    notes: Optional[str] = Field(None, max_length=2000)
    scheduled_date: Optional[datetime] = None
    coupon_code: Optional[str] = Field(None, max_length=50)


class OrderItemOut(BaseModel):
    service_id: str
    option_id: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: Optional[str] = None


class OrderOut(BaseModel):
    """Schema dla zamowienia (response)."""

    id: int
    order_number: str
    user_id: int
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    total_amount: Decimal
    discount_amount: Decimal
    amount_due: Decimal
    coupon_code: Optional[str] = None
    bank_transfer_status: Optional[str] = None
    notes: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemOut]


class BankTransferOut(OrderOut):
    bank_transfer_receipt: Optional[str] = None
    admin_approved_by: Optional[int] = None
    admin_approved_at: Optional[datetime] = None
    admin_notes: Optional[str] = None


class TrackingEntryOut(BaseModel):
    status: str
    title: str
    description: Optional[str] = None
    admin_id: Optional[int] = None
    timestamp: datetime


class TrackingOut(BaseModel):
    order_number: str
    current_status: str
    tracking: List[TrackingEntryOut]


class AdminTrackingOut(BaseModel):
    order: OrderOut
    tracking: List[TrackingEntryOut]


class CouponValidateIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    order_total: Decimal


class CouponQuoteOut(BaseModel):
    code: str
    discount: Decimal
    new_total: Decimal


class CouponCreate(BaseModel):
    """Schema dla tworzenia kuponu (admin)."""

    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    discount_type: str = Field(..., description="PERCENTAGE albo FIXED")
    discount_value: Decimal = Field(..., ge=0)
    min_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount: Optional[Decimal] = Field(None, ge=0)
    max_uses: Optional[int] = Field(None, gt=0)
    valid_from: Optional[datetime] = None
    valid_until: datetime
    active: bool = True


class CouponActiveIn(BaseModel):
    active: bool


class CouponOut(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    discount_type: str
    discount_value: Decimal
    min_amount: Optional[Decimal] = None
    max_discount: Optional[Decimal] = None
    max_uses: Optional[int] = None
    used_count: int
    valid_from: datetime
    valid_until: datetime
    active: bool

    model_config = ConfigDict(from_attributes=True)


class PaymentInitiateIn(BaseModel):
    """
    Wybor metody platnosci.
    billing_data: dane rozliczeniowe (paymob), token karty `payment_method` (stripe)
    albo `receipt_ref` (przelew).
    """

    method: PaymentMethod
    billing_data: Optional[dict] = None


class BankReceiptIn(BaseModel):
    receipt_ref: str = Field(..., min_length=1, max_length=500, description="Referencja potwierdzenia przelewu")


class AdminDecisionIn(BaseModel):
    admin_id: int = Field(..., gt=0)
    approve: bool
    notes: Optional[str] = Field(None, max_length=2000)


class TrackingUpdateIn(BaseModel):
    admin_id: int = Field(..., gt=0)
    status: OrderStatus
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None


class WebhookResultOut(BaseModel):
    outcome: str
    order_number: Optional[str] = None
    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    reason: str = ""
