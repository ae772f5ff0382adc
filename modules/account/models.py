"""
Account Module - Models
========================
Per-role profiles carrying denormalized statistics that checkout keeps
up to date on a best-effort basis.
"""

from sqlalchemy import Column, Integer, String, Numeric, Text, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class BuyerProfile(Base):
    __tablename__ = "buyers"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    total_spent = Column(Numeric(12, 2), default=0, nullable=False)
    total_orders = Column(Integer, default=0, nullable=False)
    delivery_address = Column(Text, nullable=True)     # last used at checkout
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")


class ProducerProfile(Base):
    __tablename__ = "producers"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    farm_name = Column(String, nullable=True)
    total_sales = Column(Numeric(12, 2), default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")
