from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List
from datetime import datetime
from models.coupon import CouponType

class CouponBase(BaseModel):
    name: str = Field(..., min_length=1)
    type: CouponType
    value: float = Field(..., gt=0)
    max_discount_amount: Optional[float] = Field(None, gt=0)
    min_order_amount: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None

class CouponCreate(CouponBase):
    location_id: int

    @model_validator(mode='after')
    def validate_percentage_cap(self):
        if self.type == CouponType.PERCENTAGE:
            if self.value > 100:
                raise ValueError("Percentage coupons cannot exceed 100%")
            if self.max_discount_amount is None:
                raise ValueError("Percentage coupons require a maximum discount amount")
        return self

class CouponUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[CouponType] = None
    value: Optional[float] = Field(None, gt=0)
    max_discount_amount: Optional[float] = Field(None, gt=0)
    min_order_amount: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    is_active: Optional[bool] = None

class CouponResponse(CouponBase):
    id: int
    location_id: int
    is_active: bool
    created_by_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class DishCouponCreate(BaseModel):
    location_id: int
    dish_name: str = Field(..., min_length=1)
    percentages: List[float] = Field(..., min_length=1)

class DishCouponUpdate(BaseModel):
    dish_name: Optional[str] = Field(None, min_length=1)
    discount_percentage: Optional[float] = Field(None, gt=0, le=100)
    is_active: Optional[bool] = None

class DishCouponResponse(BaseModel):
    id: int
    coupon_code: str
    dish_name: str
    discount_percentage: float
    is_active: bool
    location_id: int
    created_by_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class DishCouponBulkResponse(BaseModel):
    created: List[DishCouponResponse]
    created_ids: List[int]
    skipped_percentages: List[float]
    skipped_count: int

class CouponValidationRequest(BaseModel):
    coupon_id: Optional[int] = None
    dish_coupon_ids: List[int] = Field(default_factory=list)

class CouponValidationResponse(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    regular_discount: float = 0.0
    dish_discounts: List[dict] = []
    total_discount: float = 0.0
