"""Attendance service with role-based permission checks."""

import logging
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.models import User
from school_api.auth.policy import Action, authorize
from school_api.auth.schemas import CurrentUser
from school_api.core.enums import AttendanceStatus, UserRole
from school_api.core.exceptions import ServiceError, parse_uuid
from school_api.core.grading import attendance_rate, empty_status_counts
from school_api.core.models import Attendance
from school_api.core.services import (
    get_class_of,
    get_class_or_404,
    get_student_or_404,
    taught_class_ids,
    total_pages,
)
from school_api.db.session import utcnow

from .schemas import (
    AttendanceBulkMark,
    AttendanceListResponse,
    AttendanceMark,
    AttendanceResponse,
    AttendanceStats,
    AttendanceUpdate,
    BulkMarkResponse,
    ClassAttendanceReport,
    ClassReportStudent,
    ClassReportSummary,
    StatusCount,
    StudentAttendanceStats,
)

logger = logging.getLogger(__name__)

NOT_ASSIGNED_MESSAGE = "You are not assigned to this class"


def _to_response(a: Attendance) -> AttendanceResponse:
    return AttendanceResponse.model_validate(a)


def _date_range(stmt, start_date: Optional[date], end_date: Optional[date]):
    if start_date:
        stmt = stmt.where(Attendance.date >= start_date)
    if end_date:
        stmt = stmt.where(Attendance.date <= end_date)
    return stmt


async def _status_counts(db: AsyncSession, conditions: List) -> Dict[str, int]:
    stmt = select(Attendance.status, func.count(Attendance.id)).where(*conditions).group_by(Attendance.status)
    result = await db.execute(stmt)
    counts = empty_status_counts()
    for row_status, count in result.all():
        counts[row_status] = count
    return counts


# ----- Writes -----
async def mark_attendance(
    db: AsyncSession,
    actor: CurrentUser,
    payload: AttendanceMark,
) -> AttendanceResponse:
    """Mark one student. Teacher of the class only."""
    school_class = await get_class_or_404(db, payload.class_id)
    authorize(actor, Action.RECORD, school_class, message=NOT_ASSIGNED_MESSAGE)

    student = await get_student_or_404(db, payload.student_id)
    if student.class_id != school_class.id:
        raise ServiceError("Student is not enrolled in this class", status.HTTP_400_BAD_REQUEST)

    existing = await db.execute(
        select(Attendance.id).where(
            Attendance.student_id == payload.student_id,
            Attendance.class_id == payload.class_id,
            Attendance.date == payload.date,
        )
    )
    if existing.first():
        raise ServiceError(
            "Attendance already marked for this student on this date",
            status.HTTP_409_CONFLICT,
        )

    record = Attendance(
        student_id=student.id,
        class_id=school_class.id,
        school_id=school_class.school_id,
        marked_by=actor.id,
        date=payload.date,
        status=payload.status.value,
        remarks=payload.remarks,
        time_in=payload.time_in,
        time_out=payload.time_out,
        period_details=payload.period_details.model_dump() if payload.period_details else None,
        is_half_day=payload.is_half_day,
    )
    db.add(record)
    try:
        await db.commit()
    except IntegrityError:
        # Unique (student, class, date) lost a race with a concurrent mark
        await db.rollback()
        logger.warning("Duplicate attendance for student %s on %s", payload.student_id, payload.date)
        raise ServiceError(
            "Attendance already marked for this student on this date",
            status.HTTP_409_CONFLICT,
        )
    await db.refresh(record)
    logger.info("Attendance %s marked by %s", record.id, actor.id)
    return _to_response(record)


async def mark_bulk_attendance(
    db: AsyncSession,
    actor: CurrentUser,
    payload: AttendanceBulkMark,
) -> BulkMarkResponse:
    """Mark a class for one date in a single transaction: every record is stored or none."""
    # Lock the class so concurrent batches for the same date run the check below one at a time
    school_class = await get_class_or_404(db, payload.class_id, lock=True)
    authorize(actor, Action.RECORD, school_class, message=NOT_ASSIGNED_MESSAGE)

    student_ids = [entry.student_id for entry in payload.attendance]
    if len(set(student_ids)) != len(student_ids):
        raise ServiceError("Each student may appear only once per batch", status.HTTP_400_BAD_REQUEST)

    existing = await db.execute(
        select(Attendance.id).where(
            Attendance.class_id == payload.class_id,
            Attendance.date == payload.date,
        ).limit(1)
    )
    if existing.first():
        raise ServiceError(
            "Attendance already marked for this class on this date",
            status.HTTP_409_CONFLICT,
        )

    enrolled = await db.execute(
        select(User.id).where(
            User.id.in_(student_ids),
            User.role == UserRole.STUDENT.value,
            User.class_id == school_class.id,
        )
    )
    enrolled_ids = set(enrolled.scalars().all())
    missing = [str(sid) for sid in student_ids if sid not in enrolled_ids]
    if missing:
        raise ServiceError(
            f"Some students are not enrolled in this class: {', '.join(missing)}",
            status.HTTP_400_BAD_REQUEST,
        )

    period_details = payload.period_details.model_dump() if payload.period_details else None
    records = [
        Attendance(
            student_id=entry.student_id,
            class_id=school_class.id,
            school_id=school_class.school_id,
            marked_by=actor.id,
            date=payload.date,
            status=entry.status.value,
            remarks=entry.remarks,
            time_in=entry.time_in,
            time_out=entry.time_out,
            period_details=period_details,
            is_half_day=entry.is_half_day,
        )
        for entry in payload.attendance
    ]
    db.add_all(records)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Bulk attendance for class %s on %s rejected by unique index", payload.class_id, payload.date)
        raise ServiceError(
            "Attendance already marked for this class on this date",
            status.HTTP_409_CONFLICT,
        )
    logger.info("Bulk attendance: %d records for class %s on %s", len(records), school_class.id, payload.date)
    return BulkMarkResponse(marked=len(records), records=[_to_response(r) for r in records])


async def _get_record_for_change(db: AsyncSession, actor: CurrentUser, attendance_id: str) -> Attendance:
    record = await db.get(Attendance, parse_uuid(attendance_id, "attendance"))
    if not record:
        raise ServiceError("Attendance record not found", status.HTTP_404_NOT_FOUND)
    authorize(
        actor,
        Action.MODIFY,
        record,
        message="You can only modify attendance records you marked or that belong to your school",
    )
    return record


async def update_attendance(
    db: AsyncSession,
    actor: CurrentUser,
    attendance_id: str,
    payload: AttendanceUpdate,
) -> AttendanceResponse:
    record = await _get_record_for_change(db, actor, attendance_id)

    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field in ("status", "is_half_day"):
            continue
        if field == "status":
            value = AttendanceStatus(value).value
        setattr(record, field, value)
    record.updated_at = utcnow()

    await db.commit()
    await db.refresh(record)
    logger.info("Attendance %s updated by %s", record.id, actor.id)
    return _to_response(record)


async def delete_attendance(db: AsyncSession, actor: CurrentUser, attendance_id: str) -> None:
    record = await _get_record_for_change(db, actor, attendance_id)
    await db.delete(record)
    await db.commit()
    logger.info("Attendance %s deleted by %s", attendance_id, actor.id)


# ----- Reads -----
async def _scope_conditions(db: AsyncSession, actor: CurrentUser) -> List:
    """Rows the caller may see at all; request filters are applied on top, never instead."""
    if actor.role == UserRole.SCHOOL_ADMIN:
        return [Attendance.school_id == actor.school_id]
    if actor.role == UserRole.TEACHER:
        class_ids = await taught_class_ids(db, actor.id)
        return [or_(Attendance.marked_by == actor.id, Attendance.class_id.in_(class_ids))]
    if actor.role == UserRole.STUDENT:
        return [Attendance.student_id == actor.id]
    raise ServiceError("Insufficient permissions", status.HTTP_403_FORBIDDEN)


async def list_attendance(
    db: AsyncSession,
    actor: CurrentUser,
    *,
    student_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
    status_filter: Optional[AttendanceStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
) -> AttendanceListResponse:
    conditions = await _scope_conditions(db, actor)
    if student_id:
        conditions.append(Attendance.student_id == student_id)
    if class_id:
        conditions.append(Attendance.class_id == class_id)
    if status_filter:
        conditions.append(Attendance.status == status_filter.value)
    if start_date:
        conditions.append(Attendance.date >= start_date)
    if end_date:
        conditions.append(Attendance.date <= end_date)

    total_result = await db.execute(select(func.count(Attendance.id)).where(*conditions))
    total = total_result.scalar_one()

    stmt = (
        select(Attendance)
        .where(*conditions)
        .order_by(Attendance.date.desc(), Attendance.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(stmt)
    records = result.scalars().all()

    counts = await _status_counts(db, conditions)
    return AttendanceListResponse(
        records=[_to_response(r) for r in records],
        total=total,
        total_pages=total_pages(total, limit),
        current_page=page,
        stats=AttendanceStats(
            total_records=sum(counts.values()),
            attendance_rate=attendance_rate(counts),
            **counts,
        ),
    )


async def get_student_attendance_stats(
    db: AsyncSession,
    actor: CurrentUser,
    student_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> StudentAttendanceStats:
    """Status counts and rate for one student. Students only ever get their own."""
    if actor.role == UserRole.STUDENT:
        if student_id is not None and student_id != actor.id:
            raise ServiceError("Students can only view their own attendance", status.HTTP_403_FORBIDDEN)
        student_id = actor.id
    elif student_id is None:
        raise ServiceError("student_id is required", status.HTTP_400_BAD_REQUEST)

    student = await get_student_or_404(db, student_id)
    authorize(
        actor,
        Action.VIEW,
        student,
        school_class=await get_class_of(db, student),
        message="You do not have access to this student's attendance",
    )

    conditions = [Attendance.student_id == student.id]
    if start_date:
        conditions.append(Attendance.date >= start_date)
    if end_date:
        conditions.append(Attendance.date <= end_date)
    counts = await _status_counts(db, conditions)

    return StudentAttendanceStats(
        student_id=student.id,
        total_days=sum(counts.values()),
        attendance_rate=attendance_rate(counts),
        breakdown=[StatusCount(status=s, count=c) for s, c in counts.items() if c],
        **counts,
    )


async def get_class_attendance_report(
    db: AsyncSession,
    actor: CurrentUser,
    class_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> ClassAttendanceReport:
    """Per-student counts and rates for one class, plus the class average rate."""
    school_class = await get_class_or_404(db, class_id)
    authorize(actor, Action.VIEW, school_class, message=NOT_ASSIGNED_MESSAGE)

    stmt = (
        select(Attendance.student_id, Attendance.status, func.count(Attendance.id))
        .where(Attendance.class_id == school_class.id)
        .group_by(Attendance.student_id, Attendance.status)
    )
    stmt = _date_range(stmt, start_date, end_date)
    result = await db.execute(stmt)

    per_student: Dict[UUID, Dict[str, int]] = {}
    for student_id, row_status, count in result.all():
        per_student.setdefault(student_id, empty_status_counts())[row_status] = count

    users: Dict[UUID, User] = {}
    if per_student:
        user_rows = await db.execute(select(User).where(User.id.in_(list(per_student))))
        users = {u.id: u for u in user_rows.scalars().all()}

    students: List[ClassReportStudent] = []
    for student_id, counts in per_student.items():
        user = users.get(student_id)
        students.append(
            ClassReportStudent(
                student_id=student_id,
                student_name=user.full_name if user else "Unknown",
                student_number=user.student_number if user else None,
                roll_number=user.roll_number if user else None,
                total_days=sum(counts.values()),
                attendance_rate=attendance_rate(counts),
                **counts,
            )
        )
    students.sort(key=lambda s: s.student_name)

    total_records = sum(s.total_days for s in students)
    average = round(sum(s.attendance_rate for s in students) / len(students), 2) if students else 0.0
    return ClassAttendanceReport(
        class_id=school_class.id,
        class_name=school_class.name,
        section=school_class.section,
        start_date=start_date,
        end_date=end_date,
        total_students=len(students),
        students=students,
        summary=ClassReportSummary(total_records=total_records, average_attendance_rate=average),
    )
