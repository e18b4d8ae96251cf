# backend/fortifymis/apps/accounts/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import Commodity, UserRole


# ---------------------------------------------------------------------------
# MILLS
# ---------------------------------------------------------------------------


class MillBase(BaseModel):
    code: str = Field(min_length=2, max_length=32)
    name: str = Field(min_length=1, max_length=255)
    region: Optional[str] = None
    country: Optional[str] = None
    commodity: Commodity = Commodity.MAIZE
    address: Optional[str] = None


class MillCreate(MillBase):
    pass


class MillUpdate(BaseModel):
    name: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    commodity: Optional[Commodity] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None


class MillRead(MillBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# USERS
# ---------------------------------------------------------------------------


class UserBase(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = None
    role: UserRole
    mill_id: Optional[str] = None


class UserCreate(UserBase):
    password: str


class UserRegister(UserBase):
    """Self-service sign-up payload."""

    password: str


class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    mill_id: Optional[str] = None
    is_active: Optional[bool] = None


class UserRead(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class CurrentUserRead(UserRead):
    permissions: List[str] = []


# ---------------------------------------------------------------------------
# AUTH / TOKENS
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead
