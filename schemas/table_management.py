from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from models.table_management import TableStatus

class TableBase(BaseModel):
    name: str = Field(..., min_length=1)
    capacity: int = Field(..., ge=1)
    location_id: int

class TableCreate(TableBase):
    pass

class TableUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    capacity: Optional[int] = Field(None, ge=1)
    status: Optional[TableStatus] = None

class TableResponse(TableBase):
    id: int
    status: TableStatus
    current_order_id: Optional[int] = None
    occupied_at: Optional[datetime] = None
    merge_group: Optional[str] = None
    merged_into_id: Optional[int] = None
    reserved_at: Optional[datetime] = None
    reservation_expiry_at: Optional[datetime] = None
    reservation_customer_name: Optional[str] = None
    reservation_customer_phone: Optional[str] = None
    reservation_notes: Optional[str] = None
    version_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class TableReserve(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None

class TableSwitch(BaseModel):
    from_table_id: int
    to_table_id: int

class TableMerge(BaseModel):
    table_ids: List[int] = Field(..., min_length=2, description="First table becomes the primary")

class TableIds(BaseModel):
    table_ids: List[int] = Field(..., min_length=1)

class TableBatchFailure(BaseModel):
    table_id: int
    reason: str

class TableBatchResponse(BaseModel):
    succeeded: List[int]
    failed: List[TableBatchFailure]
