from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from utils.database import Base
from models.order_management import PaymentMethod
from datetime import datetime
import enum

class CollectionSource(str, enum.Enum):
    STAFF = "staff"
    MANAGER = "manager"

def _values(enum_cls):
    return [member.value for member in enum_cls]

class CustomerData(Base):
    __tablename__ = "customer_data"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    city = Column(String, nullable=True)
    payment_method = Column(Enum(PaymentMethod, name="paymentmethod", values_callable=_values), nullable=True)
    source = Column(Enum(CollectionSource, name="collectionsource", values_callable=_values), default=CollectionSource.STAFF, nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    order = relationship("Order")
