from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, JSON, Table as AssociationTable
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from utils.database import Base
from datetime import datetime
import enum

class OrderType(str, enum.Enum):
    DINE_IN = "dine_in"
    DELIVERY = "delivery"

class OrderStatus(str, enum.Enum):
    TEMPORARY = "temporary"
    ONGOING = "ongoing"
    TRANSFERRED = "transferred"
    SETTLED = "settled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"

class PendingStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"

def _values(enum_cls):
    return [member.value for member in enum_cls]

order_tables = AssociationTable(
    "order_tables",
    Base.metadata,
    Column("order_id", Integer, ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True),
    Column("table_id", Integer, ForeignKey("tables.id", ondelete="CASCADE"), primary_key=True),
)

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, index=True, nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    staff_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    order_type = Column(Enum(OrderType, name="ordertype", values_callable=_values), nullable=False)
    status = Column(Enum(OrderStatus, name="orderstatus", values_callable=_values), default=OrderStatus.TEMPORARY, nullable=False)

    # Delivery details
    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    delivery_address = Column(String, nullable=True)
    order_mode = Column(String, nullable=True)  # in-store, zomato, swiggy
    notes = Column(String, nullable=True)

    # Amounts
    subtotal = Column(Float, default=0.0, nullable=False)
    cgst_amount = Column(Float, default=0.0, nullable=False)
    sgst_amount = Column(Float, default=0.0, nullable=False)
    service_charge = Column(Float, default=0.0, nullable=False)
    coupon_discount = Column(Float, default=0.0, nullable=False)
    original_total = Column(Float, default=0.0, nullable=False)
    total_amount = Column(Float, default=0.0, nullable=False)

    # Billing
    payment_method = Column(Enum(PaymentMethod, name="paymentmethod", values_callable=_values), nullable=True)
    pending_payment_method = Column(Enum(PaymentMethod, name="paymentmethod", values_callable=_values), nullable=True)
    amount_paid = Column(Float, nullable=True)

    # Lifecycle timestamps and actors
    session_started_at = Column(DateTime, default=datetime.utcnow)
    last_activity_at = Column(DateTime, default=datetime.utcnow)
    transferred_at = Column(DateTime, nullable=True)
    transferred_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    settled_at = Column(DateTime, nullable=True)
    settled_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    version_id = Column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": version_id}

    # Relationships
    location = relationship("Location", back_populates="orders")
    staff = relationship("User", foreign_keys=[staff_id])
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    tables = relationship("Table", secondary=order_tables, order_by="Table.id")
    applied_coupons = relationship("AppliedCoupon", back_populates="order", cascade="all, delete-orphan", order_by="AppliedCoupon.id")
    pending_entries = relationship("PendingOrder", back_populates="order", cascade="all, delete-orphan")
    history = relationship("OrderHistory", back_populates="order", cascade="all, delete-orphan", order_by="OrderHistory.id")

    @property
    def table_ids(self):
        return [table.id for table in self.tables]

    @property
    def table_names(self):
        return [f"Table {table.name}" for table in self.tables]

    @property
    def tax_amount(self) -> float:
        return round(self.cgst_amount + self.sgst_amount, 2)

    def validate_tables(self):
        """Ensure tables are assigned for dine-in orders only."""
        if self.order_type == OrderType.DINE_IN and not self.tables:
            raise ValueError("At least one table is required for dine-in orders")
        if self.order_type == OrderType.DELIVERY and self.tables:
            raise ValueError("Tables cannot be assigned to delivery orders")

class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    menu_item_id = Column(String, nullable=True)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    portion_size = Column(String, nullable=True)  # half, full
    modifications = Column(JSON, nullable=True)
    notes = Column(String, nullable=True)
    added_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="items")

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

class PendingOrder(Base):
    """Manager billing queue entry created when staff hands an order over."""
    __tablename__ = "manager_pending_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    transferred_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(Enum(PendingStatus, name="pendingstatus", values_callable=_values), default=PendingStatus.PENDING, nullable=False)
    priority = Column(String, default="normal", nullable=False)
    notes = Column(String, nullable=True)
    assigned_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="pending_entries")
    transferred_by = relationship("User", foreign_keys=[transferred_by_id])

class OrderHistory(Base):
    __tablename__ = "order_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    action = Column(String, nullable=False)
    performed_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    changes = Column(JSON, nullable=True)
    timestamp = Column(DateTime, server_default=func.now(), default=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="history")
