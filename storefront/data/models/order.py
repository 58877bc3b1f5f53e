# storefront/data/models/order.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Text
from sqlalchemy.orm import relationship

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(40), nullable=False, unique=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)

    total_amount = Column(Numeric(10, 2), nullable=False)  # suma pozycji przed rabatem
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    coupon_code = Column(String(50), nullable=True)

    # RECEIVED, PENDING_ADMIN_APPROVAL, CONFIRMED, PROCESSING, COMPLETED, CANCELLED, REFUNDED
    status = Column(String(30), nullable=False, default="RECEIVED")
    payment_status = Column(String(20), nullable=False, default="PENDING")
    payment_method = Column(String(20), nullable=True)

    # identyfikatory korelacji bramek
    moyasar_payment_id = Column(String(100), nullable=True, unique=True)
    paymob_order_id = Column(String(100), nullable=True, unique=True)
    paymob_payment_key = Column(Text, nullable=True)
    paymob_transaction_id = Column(String(100), nullable=True)
    stripe_payment_intent_id = Column(String(100), nullable=True, unique=True)

    # przelew bankowy
    bank_transfer_receipt = Column(String(500), nullable=True)
    bank_transfer_status = Column(String(30), nullable=True)
    admin_approved_by = Column(Integer, nullable=True)
    admin_approved_at = Column(DateTime(timezone=True), nullable=True)
    admin_notes = Column(Text, nullable=True)

    notes = Column(Text, nullable=True)
    scheduled_date = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    payments = relationship(
        "PaymentModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PaymentModel.id",
    )
    tracking = relationship(
        "OrderTrackingModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderTrackingModel.id",
    )

    @property
    def amount_due(self):
        return self.total_amount - (self.discount_amount or 0)


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(String(64), ForeignKey("services.id"), nullable=False)
    option_id = Column(String(64), ForeignKey("service_options.id"), nullable=True)

    quantity = Column(Integer, nullable=False)
    # cena zamrozona w chwili zamowienia, nigdy nie czytana ponownie z katalogu
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)

    order = relationship("OrderModel", back_populates="items")
