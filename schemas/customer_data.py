from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime
from models.customer_data import CollectionSource
from models.order_management import PaymentMethod

class CustomerDataUpsert(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None

class CustomerDataResponse(BaseModel):
    id: int
    order_id: int
    location_id: int
    name: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    source: CollectionSource
    timestamp: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
