# storefront/data/models/payment.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    gateway = Column(String(20), nullable=False)
    transaction_id = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="PENDING")
    # ostatni surowy payload bramki (audyt)
    raw_payload = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    order = relationship("OrderModel", back_populates="payments")

    __table_args__ = (UniqueConstraint("order_id", "gateway", name="u_payment_order_gateway"),)
