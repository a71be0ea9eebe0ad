"""Attendance API router."""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.dependencies import get_current_user
from school_api.auth.rbac import require_roles
from school_api.auth.schemas import CurrentUser
from school_api.core.enums import AttendanceStatus, UserRole
from school_api.core.exceptions import ServiceError
from school_api.db.session import get_db

from . import service
from .schemas import (
    AttendanceBulkMark,
    AttendanceListResponse,
    AttendanceMark,
    AttendanceResponse,
    AttendanceUpdate,
    BulkMarkResponse,
    ClassAttendanceReport,
    StudentAttendanceStats,
)

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])

STAFF = (UserRole.TEACHER, UserRole.SCHOOL_ADMIN)
SCHOOL_MEMBERS = (UserRole.SCHOOL_ADMIN, UserRole.TEACHER, UserRole.STUDENT)


@router.post(
    "/mark",
    response_model=AttendanceResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.TEACHER))],
)
async def mark_attendance(
    payload: AttendanceMark,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Mark one student's attendance. Teachers of the class only."""
    try:
        return await service.mark_attendance(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/mark-bulk",
    response_model=BulkMarkResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.TEACHER))],
)
async def mark_bulk_attendance(
    payload: AttendanceBulkMark,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Mark a whole class for one date; the batch is stored entirely or not at all."""
    try:
        return await service.mark_bulk_attendance(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=AttendanceListResponse,
    dependencies=[Depends(require_roles(*SCHOOL_MEMBERS))],
)
async def list_attendance(
    student_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
    status_filter: Optional[AttendanceStatus] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Paginated attendance visible to the caller, with status totals."""
    try:
        return await service.list_attendance(
            db,
            current_user,
            student_id=student_id,
            class_id=class_id,
            status_filter=status_filter,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/student-stats",
    response_model=StudentAttendanceStats,
    dependencies=[Depends(require_roles(*SCHOOL_MEMBERS))],
)
async def get_student_attendance_stats(
    student_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_student_attendance_stats(
            db, current_user, student_id, start_date, end_date
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/class-report",
    response_model=ClassAttendanceReport,
    dependencies=[Depends(require_roles(*STAFF))],
)
async def get_class_attendance_report(
    class_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_class_attendance_report(
            db, current_user, class_id, start_date, end_date
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{attendance_id}",
    response_model=AttendanceResponse,
    dependencies=[Depends(require_roles(*STAFF))],
)
async def update_attendance(
    attendance_id: str,
    payload: AttendanceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Teachers may change only what they marked; school admins anything in their school."""
    try:
        return await service.update_attendance(db, current_user, attendance_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{attendance_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(*STAFF))],
)
async def delete_attendance(
    attendance_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_attendance(db, current_user, attendance_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
