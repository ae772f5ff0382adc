"""
Catalog Module - Models
========================
Product listed by a producer. Checkout reads price/stock/status and writes
stock/status through the conditional decrement in the service layer.
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Numeric, Text,
    ForeignKey, DateTime, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class ProductStatus(str, enum.Enum):
    AVAILABLE = "available"
    OUT_OF_STOCK = "outOfStock"
    DISCONTINUED = "discontinued"


def derive_status(quantity: int) -> ProductStatus:
    """Stock-driven status: outOfStock iff nothing left."""
    return ProductStatus.OUT_OF_STOCK if quantity == 0 else ProductStatus.AVAILABLE


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    producer_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    unit = Column(String, nullable=False, default="kg")
    unit_price = Column(Numeric(12, 2), nullable=False)
    available_quantity = Column(Integer, default=0, nullable=False)
    status = Column(String, default=ProductStatus.AVAILABLE.value, nullable=False, index=True)
    order_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    producer = relationship("User", foreign_keys=[producer_id])

    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_product_qty"),
        CheckConstraint("unit_price >= 0", name="ck_product_price"),
    )

    @property
    def is_available(self) -> bool:
        return self.status == ProductStatus.AVAILABLE

    def __repr__(self):
        return f"<Product {self.title} ({self.available_quantity} {self.unit})>"
