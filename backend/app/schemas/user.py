# app/schemas/user.py

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from app.models import UserRole
from app.schemas.base import CamelModel


class UserCreate(CamelModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=1)
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class UserLogin(CamelModel):
    email: EmailStr
    password: str


class UserResponse(CamelModel):
    id: int
    name: str
    email: EmailStr
    role: UserRole
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    created_at: datetime


class UserUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1)
    phone: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None


class RoleUpdate(CamelModel):
    role: UserRole


class UserPage(CamelModel):
    total: int
    data: list[UserResponse]
