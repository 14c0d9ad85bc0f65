from sqlalchemy import Column, Integer, String, ForeignKey, Enum, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from utils.database import Base
import enum

class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"  # Out of service, never seated

class Table(Base):
    __tablename__ = "tables"
    __table_args__ = (UniqueConstraint("location_id", "name", name="uq_tables_location_name"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    capacity = Column(Integer, nullable=False)
    status = Column(
        Enum(TableStatus, name="tablestatus", values_callable=lambda e: [m.value for m in e]),
        default=TableStatus.AVAILABLE,
        nullable=False,
    )
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False)

    # Occupancy
    current_order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    occupied_at = Column(DateTime, nullable=True)

    # Merge group: every member carries the group key, the primary keeps merged_into_id empty
    merge_group = Column(String, nullable=True, index=True)
    merged_into_id = Column(Integer, ForeignKey("tables.id"), nullable=True)

    # Reservation
    reserved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reserved_at = Column(DateTime, nullable=True)
    reservation_expiry_at = Column(DateTime, nullable=True)
    reservation_customer_name = Column(String, nullable=True)
    reservation_customer_phone = Column(String, nullable=True)
    reservation_notes = Column(String, nullable=True)

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version_id}

    # Relationships
    location = relationship("Location", back_populates="tables")
    current_order = relationship("Order", foreign_keys=[current_order_id])

    @property
    def is_merged(self) -> bool:
        return self.merge_group is not None

    @property
    def is_primary(self) -> bool:
        return self.merge_group is not None and self.merged_into_id is None
