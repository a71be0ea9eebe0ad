from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from school_api.core.enums import GradeSystem, TermSystem


class SchoolSettings(BaseModel):
    academic_year: Optional[str] = None
    term_system: TermSystem = TermSystem.semester
    grade_system: GradeSystem = GradeSystem.percentage
    attendance_threshold: int = Field(75, ge=0, le=100)


class SchoolCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: str
    city: str
    state: str
    country: str
    zip_code: str
    phone: str
    email: EmailStr
    website: Optional[str] = None
    admin_id: UUID
    settings: SchoolSettings = Field(default_factory=SchoolSettings)
    allowed_domains: List[str] = []


class SchoolUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    website: Optional[str] = None
    is_active: Optional[bool] = None
    settings: Optional[SchoolSettings] = None
    allowed_domains: Optional[List[str]] = None


class SmsQuotaUpdate(BaseModel):
    monthly_limit: int = Field(..., ge=0)


class SmsQuota(BaseModel):
    monthly_limit: int
    used: int
    reset_date: datetime


class SchoolResponse(BaseModel):
    id: UUID
    name: str
    address: str
    city: str
    state: str
    country: str
    zip_code: str
    phone: str
    email: str
    website: Optional[str] = None
    admin_id: UUID
    is_active: bool
    settings: SchoolSettings
    sms_quota: SmsQuota
    allowed_domains: List[str]
    created_at: datetime
    updated_at: datetime


class SchoolListResponse(BaseModel):
    schools: List[SchoolResponse]
    total: int
    total_pages: int
    current_page: int


class SmsUsage(BaseModel):
    used: int
    limit: int
    remaining: int


class SchoolStats(BaseModel):
    total_students: int
    total_teachers: int
    total_classes: int
    sms_usage: SmsUsage
