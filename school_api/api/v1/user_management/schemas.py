from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from school_api.auth.schemas import UserResponse
from school_api.core.enums import Gender


class ParentDetails(BaseModel):
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    guardian_name: Optional[str] = None
    relationship: Optional[str] = None
    contact_number: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None


class _PersonCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)
    school_id: UUID
    phone_number: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None


class TeacherCreate(_PersonCreate):
    employee_id: Optional[str] = Field(None, max_length=50)
    qualification: Optional[str] = None
    experience: Optional[int] = Field(None, ge=0)
    joining_date: Optional[date] = None
    assigned_classes: List[UUID] = []


class StudentCreate(_PersonCreate):
    class_id: UUID
    student_number: Optional[str] = Field(None, max_length=50)
    admission_number: Optional[str] = Field(None, max_length=50)
    admission_date: Optional[date] = None
    roll_number: Optional[str] = Field(None, max_length=50)
    parent_details: Optional[ParentDetails] = None


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    employee_id: Optional[str] = Field(None, max_length=50)
    qualification: Optional[str] = None
    experience: Optional[int] = Field(None, ge=0)
    joining_date: Optional[date] = None
    assigned_classes: Optional[List[UUID]] = None
    class_id: Optional[UUID] = None
    student_number: Optional[str] = Field(None, max_length=50)
    admission_number: Optional[str] = Field(None, max_length=50)
    admission_date: Optional[date] = None
    roll_number: Optional[str] = Field(None, max_length=50)
    parent_details: Optional[ParentDetails] = None


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    total_pages: int
    current_page: int


# ----- Classes -----
class ClassSubjectIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    teacher_id: Optional[UUID] = None
    credits: int = Field(1, ge=1)


class ClassSubjectOut(BaseModel):
    id: UUID
    name: str
    code: str
    teacher_id: Optional[UUID] = None
    credits: int

    class Config:
        from_attributes = True


class ClassSchedule(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    days: List[str] = []


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    section: str = Field(..., min_length=1, max_length=20)
    grade: int = Field(..., ge=1, le=12)
    school_id: UUID
    class_teacher_id: UUID
    subject_teacher_ids: List[UUID] = []
    academic_year: str = Field(..., min_length=4, max_length=20)
    subjects: List[ClassSubjectIn] = []
    schedule: Optional[ClassSchedule] = None
    capacity: int = Field(40, ge=1)
    description: Optional[str] = None


class ClassResponse(BaseModel):
    id: UUID
    school_id: UUID
    name: str
    section: str
    grade: int
    class_teacher_id: Optional[UUID] = None
    subject_teacher_ids: List[UUID]
    academic_year: str
    subjects: List[ClassSubjectOut]
    schedule: Optional[ClassSchedule] = None
    capacity: int
    description: Optional[str] = None
    is_active: bool
    student_count: int = 0
    created_at: datetime


class SchoolUserStats(BaseModel):
    total_students: int
    total_teachers: int
    total_classes: int
    active_students: int
    active_teachers: int
    # Classes with at least one free seat
    classes_with_capacity: int
