from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from school_api.core.enums import AttendanceStatus


class PeriodDetails(BaseModel):
    period: Optional[int] = Field(None, ge=1)
    subject: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class AttendanceMark(BaseModel):
    """Mark attendance for a single student."""

    student_id: UUID
    class_id: UUID
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = None
    time_in: Optional[datetime] = None
    time_out: Optional[datetime] = None
    period_details: Optional[PeriodDetails] = None
    is_half_day: bool = False


class BulkAttendanceEntry(BaseModel):
    student_id: UUID
    status: AttendanceStatus
    remarks: Optional[str] = None
    time_in: Optional[datetime] = None
    time_out: Optional[datetime] = None
    is_half_day: bool = False


class AttendanceBulkMark(BaseModel):
    """Mark a whole class for one date; all entries are stored or none are."""

    class_id: UUID
    date: date
    period_details: Optional[PeriodDetails] = None
    attendance: List[BulkAttendanceEntry] = Field(..., min_length=1)


class AttendanceUpdate(BaseModel):
    status: Optional[AttendanceStatus] = None
    remarks: Optional[str] = None
    time_in: Optional[datetime] = None
    time_out: Optional[datetime] = None
    period_details: Optional[PeriodDetails] = None
    is_half_day: Optional[bool] = None


class AttendanceResponse(BaseModel):
    id: UUID
    student_id: UUID
    class_id: UUID
    school_id: UUID
    marked_by: Optional[UUID] = None
    date: date
    status: str
    remarks: Optional[str] = None
    time_in: Optional[datetime] = None
    time_out: Optional[datetime] = None
    period_details: Optional[PeriodDetails] = None
    is_half_day: bool
    is_notified: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BulkMarkResponse(BaseModel):
    marked: int
    records: List[AttendanceResponse]


class AttendanceStats(BaseModel):
    total_records: int
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float


class AttendanceListResponse(BaseModel):
    records: List[AttendanceResponse]
    total: int
    total_pages: int
    current_page: int
    stats: AttendanceStats


class StatusCount(BaseModel):
    status: str
    count: int


class StudentAttendanceStats(BaseModel):
    student_id: UUID
    total_days: int
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float
    breakdown: List[StatusCount]


class ClassReportStudent(BaseModel):
    student_id: UUID
    student_name: str
    student_number: Optional[str] = None
    roll_number: Optional[str] = None
    total_days: int
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float


class ClassReportSummary(BaseModel):
    total_records: int
    average_attendance_rate: float


class ClassAttendanceReport(BaseModel):
    class_id: UUID
    class_name: str
    section: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_students: int
    students: List[ClassReportStudent]
    summary: ClassReportSummary
