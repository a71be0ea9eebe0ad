from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from school_api.core.enums import UserRole


class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.STUDENT
    school_id: Optional[UUID] = None
    phone_number: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserInfo(BaseModel):
    id: UUID
    name: str
    email: EmailStr
    role: str
    school_id: Optional[UUID] = None


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserInfo
    issued_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    """Public view of a user; never carries the password hash."""

    id: UUID
    school_id: Optional[UUID] = None
    first_name: str
    last_name: str
    email: str
    role: str
    is_active: bool
    phone_number: Optional[str] = None
    address: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    employee_id: Optional[str] = None
    qualification: Optional[str] = None
    experience: Optional[int] = None
    joining_date: Optional[date] = None
    class_id: Optional[UUID] = None
    student_number: Optional[str] = None
    roll_number: Optional[str] = None
    admission_number: Optional[str] = None
    admission_date: Optional[date] = None
    parent_details: Optional[Dict] = None
    # Teachers only; empty for other roles
    assigned_classes: List[UUID] = []
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CurrentUser(BaseModel):
    """Authenticated caller as seen by services and the authorization policy."""

    id: UUID
    school_id: Optional[UUID] = None
    role: UserRole
    email: str
    first_name: str = ""
    last_name: str = ""
