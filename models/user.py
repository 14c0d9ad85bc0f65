from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from utils.database import Base
import enum

class UserRole(str, enum.Enum):
    SUPERADMIN = "superadmin"  # Operator of the POS platform
    OWNER = "owner"             # Owns one or more franchises
    MANAGER = "manager"         # Settles bills and runs a location
    STAFF = "staff"             # Takes orders on the floor

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    pin = Column(String(6), unique=True, index=True, nullable=True)  # 6-digit PIN for floor login
    role = Column(Enum(UserRole, name="userrole", values_callable=lambda e: [m.value for m in e]), nullable=False)
    is_active = Column(Boolean, default=True)
    location_id = Column(Integer, ForeignKey("locations.id", use_alter=True, name="fk_users_location_id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    franchises = relationship("Franchise", back_populates="owner", cascade="all, delete-orphan")
    location = relationship("Location", back_populates="users")

    @property
    def requires_location(self) -> bool:
        """Managers and staff always work at a single location."""
        return self.role in [UserRole.MANAGER, UserRole.STAFF]

    @property
    def display_name(self) -> str:
        return self.name or self.username or self.email

    @property
    def is_manager(self) -> bool:
        return self.role in [UserRole.SUPERADMIN, UserRole.OWNER, UserRole.MANAGER]
