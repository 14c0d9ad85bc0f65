from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from utils.database import Base
from datetime import datetime
import enum

class CouponType(str, enum.Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"

class AppliedCouponKind(str, enum.Enum):
    REGULAR = "regular"
    DISH = "dish"

def _values(enum_cls):
    return [member.value for member in enum_cls]

class Coupon(Base):
    """Order-level coupon."""
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    type = Column(Enum(CouponType, name="coupontype", values_callable=_values), nullable=False)
    value = Column(Float, nullable=False)
    max_discount_amount = Column(Float, nullable=True)  # percentage coupons only
    min_order_amount = Column(Float, nullable=True)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class DishCoupon(Base):
    """Coupon restricted to one named menu item."""
    __tablename__ = "dish_coupons"

    id = Column(Integer, primary_key=True, index=True)
    coupon_code = Column(String, nullable=False, index=True)  # display code, e.g. CHILLICHICKEN8
    dish_name = Column(String, nullable=False)
    discount_percentage = Column(Float, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class AppliedCoupon(Base):
    """A coupon attached to an order, with the amount computed when it was applied."""
    __tablename__ = "applied_coupons"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(Enum(AppliedCouponKind, name="appliedcouponkind", values_callable=_values), nullable=False)
    coupon_id = Column(Integer, nullable=False)
    name = Column(String, nullable=False)  # coupon name or dish coupon code
    coupon_type = Column(Enum(CouponType, name="coupontype", values_callable=_values), nullable=False)
    dish_name = Column(String, nullable=True)
    discount_percentage = Column(Float, nullable=True)
    discount_amount = Column(Float, default=0.0, nullable=False)
    applied_at = Column(DateTime, server_default=func.now(), default=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="applied_coupons")
