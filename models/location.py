from sqlalchemy import Column, Integer, Boolean, String, Float, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from utils.database import Base
from utils.config import DEFAULT_CGST_RATE, DEFAULT_SGST_RATE

class Franchise(Base):
    __tablename__ = "franchises"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String, server_default='active')
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    owner = relationship("User", back_populates="franchises")
    locations = relationship("Location", back_populates="franchise", cascade="all, delete-orphan")


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    franchise_id = Column(Integer, ForeignKey("franchises.id"), nullable=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)

    # Billing settings, all percentages of the pre-discount subtotal
    cgst_rate = Column(Float, default=DEFAULT_CGST_RATE, nullable=False)
    sgst_rate = Column(Float, default=DEFAULT_SGST_RATE, nullable=False)
    service_charge_rate = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    franchise = relationship("Franchise", back_populates="locations")
    users = relationship("User", back_populates="location")
    tables = relationship("Table", back_populates="location", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="location", cascade="all, delete-orphan")
