# storefront/data/models/cart_item.py
from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(String(64), ForeignKey("services.id"), nullable=False)
    option_id = Column(String(64), ForeignKey("service_options.id"), nullable=True)

    quantity = Column(Integer, nullable=False)

    cart = relationship("CartModel", back_populates="items")
    service = relationship("ServiceModel")
    option = relationship("ServiceOptionModel")

    __table_args__ = (
        UniqueConstraint("cart_id", "service_id", "option_id", name="u_cart_service_option"),
        CheckConstraint("quantity >= 1", name="ck_cart_item_quantity"),
    )
