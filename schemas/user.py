from pydantic import BaseModel, ConfigDict, EmailStr, field_validator, model_validator
from typing import Optional
from datetime import datetime
from models.user import UserRole

class LoginRequest(BaseModel):
    username: str
    password: Optional[str] = None
    pin: Optional[str] = None

    @field_validator('pin')
    @classmethod
    def validate_pin(cls, v):
        if v is not None:
            if not v.isdigit() or len(v) != 6:
                raise ValueError('PIN must be a 6-digit number')
        return v

    @model_validator(mode='after')
    def validate_login_method(self):
        if self.pin:
            # PIN login replaces the password
            if self.password is not None:
                raise ValueError('Password should not be provided for PIN login')
        elif not self.password:
            raise ValueError('Provide both username and password for login')
        return self

class UserBase(BaseModel):
    email: EmailStr

class UserCreate(UserBase):
    username: str
    name: Optional[str] = None
    password: str
    role: UserRole
    location_id: Optional[int] = None

    @model_validator(mode='after')
    def validate_location(self):
        if self.role in (UserRole.MANAGER, UserRole.STAFF) and self.location_id is None:
            raise ValueError('Managers and staff must be assigned to a location')
        return self

class AdminSetup(UserBase):
    username: str
    password: str

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    location_id: Optional[int] = None

class UserResponse(UserBase):
    id: int
    role: UserRole
    username: str
    name: Optional[str] = None
    is_active: bool
    location_id: Optional[int] = None
    pin: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenData(BaseModel):
    username: Optional[str] = None
    role: Optional[UserRole] = None
