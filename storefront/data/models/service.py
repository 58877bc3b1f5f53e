# storefront/data/models/service.py
from sqlalchemy import Column, String, Boolean, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class ServiceModel(Base):
    """Katalog uslug - dla rdzenia tylko do odczytu (poza stanem magazynowym)."""

    __tablename__ = "services"

    id = Column(String(64), primary_key=True)
    title = Column(String(200), nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    available = Column(Boolean, nullable=False, default=True)
    stock = Column(Integer, nullable=True)  # None = bez limitu

    options = relationship(
        "ServiceOptionModel",
        back_populates="service",
        cascade="all, delete-orphan",
    )


class ServiceOptionModel(Base):
    __tablename__ = "service_options"

    id = Column(String(64), primary_key=True)
    service_id = Column(String(64), ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    service = relationship("ServiceModel", back_populates="options")
