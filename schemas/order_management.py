import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.order_management import OrderStatus, OrderType, PaymentMethod, PendingStatus

# Configure logger
logger = logging.getLogger(__name__)


class OrderItemCreate(BaseModel):
    menu_item_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    portion_size: Optional[str] = None
    modifications: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Item name is required")
        return v.strip()


class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: Optional[str] = None
    name: str
    price: float
    quantity: int
    portion_size: Optional[str] = None
    modifications: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    line_total: float

    model_config = ConfigDict(from_attributes=True)


class OrderCreate(BaseModel):
    location_id: int = Field(..., gt=0, description="ID of the restaurant location")
    order_type: OrderType = Field(..., description="Type of order: dine_in or delivery")
    table_ids: List[int] = Field(default_factory=list, description="Tables for dine-in orders only")
    items: List[OrderItemCreate] = Field(default_factory=list)
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    order_mode: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode='after')
    def validate_order_type_and_tables(self):
        logger.debug(f"Validating OrderCreate: type={self.order_type}, tables={self.table_ids}")
        if self.order_type == OrderType.DINE_IN and not self.table_ids:
            raise ValueError("At least one table is required for dine-in orders")
        if self.order_type == OrderType.DELIVERY and self.table_ids:
            raise ValueError("Tables should not be provided for delivery orders")
        if len(set(self.table_ids)) != len(self.table_ids):
            raise ValueError("Duplicate table ids")
        return self


class OrderItemsUpdate(BaseModel):
    items: List[OrderItemCreate]


class ManagerOrderUpdate(BaseModel):
    items: Optional[List[OrderItemCreate]] = None
    notes: Optional[str] = None
    customer_name: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


class CustomerDetails(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None


class OrderTransfer(BaseModel):
    notes: Optional[str] = None
    customer: Optional[CustomerDetails] = None
    payment_method: Optional[PaymentMethod] = None


class OrderSettle(BaseModel):
    payment_method: Optional[PaymentMethod] = None
    amount: Optional[float] = Field(None, ge=0)


class OrderCancel(BaseModel):
    reason: Optional[str] = None


class CouponSelection(BaseModel):
    coupon_id: Optional[int] = None
    dish_coupon_ids: List[int] = Field(default_factory=list)


class AppliedCouponResponse(BaseModel):
    id: int
    kind: str
    coupon_id: int
    name: str
    coupon_type: str
    dish_name: Optional[str] = None
    discount_percentage: Optional[float] = None
    discount_amount: float

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: int
    order_number: str
    location_id: int
    staff_id: int
    order_type: OrderType
    status: OrderStatus
    table_ids: List[int]
    table_names: List[str]
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    order_mode: Optional[str] = None
    notes: Optional[str] = None
    subtotal: float
    cgst_amount: float
    sgst_amount: float
    service_charge: float
    coupon_discount: float
    original_total: float
    total_amount: float
    payment_method: Optional[PaymentMethod] = None
    pending_payment_method: Optional[PaymentMethod] = None
    amount_paid: Optional[float] = None
    transferred_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    version_id: int
    items: List[OrderItemResponse]
    applied_coupons: List[AppliedCouponResponse]

    model_config = ConfigDict(from_attributes=True)


class TableReleaseFailure(BaseModel):
    table_id: int
    reason: str


class OrderCloseResponse(BaseModel):
    order: OrderResponse
    released_table_ids: List[int]
    failed_tables: List[TableReleaseFailure]


class PendingOrderResponse(BaseModel):
    id: int
    order_id: int
    location_id: int
    transferred_by_id: int
    assigned_to_id: Optional[int] = None
    status: PendingStatus
    priority: str
    notes: Optional[str] = None
    assigned_at: Optional[datetime] = None
    created_at: datetime
    order: OrderResponse

    model_config = ConfigDict(from_attributes=True)


class OrderHistoryResponse(BaseModel):
    id: int
    order_id: int
    action: str
    performed_by_id: int
    changes: Optional[Dict[str, Any]] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)
