from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

class LocationBase(BaseModel):
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None

class LocationCreate(LocationBase):
    franchise_id: Optional[int] = None
    cgst_rate: Optional[float] = Field(None, ge=0, le=100)
    sgst_rate: Optional[float] = Field(None, ge=0, le=100)
    service_charge_rate: float = Field(0.0, ge=0, le=100)

class LocationSettingsUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None
    cgst_rate: Optional[float] = Field(None, ge=0, le=100)
    sgst_rate: Optional[float] = Field(None, ge=0, le=100)
    service_charge_rate: Optional[float] = Field(None, ge=0, le=100)

class LocationResponse(LocationBase):
    id: int
    franchise_id: Optional[int] = None
    is_active: bool
    cgst_rate: float
    sgst_rate: float
    service_charge_rate: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class FranchiseBase(BaseModel):
    name: str
    status: Optional[str] = "active"

class FranchiseCreate(FranchiseBase):
    owner_id: Optional[int] = None

class FranchiseResponse(FranchiseBase):
    id: int
    owner_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    locations: List[LocationResponse] = []

    model_config = ConfigDict(from_attributes=True)
