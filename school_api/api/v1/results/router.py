"""Results API router."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.dependencies import get_current_user
from school_api.auth.rbac import require_roles
from school_api.auth.schemas import CurrentUser
from school_api.core.enums import AssessmentType, Term, UserRole
from school_api.core.exceptions import ServiceError
from school_api.db.session import get_db

from . import service
from .schemas import (
    BulkResultResponse,
    ClassResultsResponse,
    ReportCardResponse,
    ResultBulkCreate,
    ResultCreate,
    ResultListResponse,
    ResultResponse,
    ResultUpdate,
    SubjectCreate,
    SubjectResponse,
)

router = APIRouter(prefix="/api/v1/results", tags=["results"])

STAFF = (UserRole.TEACHER, UserRole.SCHOOL_ADMIN)
SCHOOL_MEMBERS = (UserRole.SCHOOL_ADMIN, UserRole.TEACHER, UserRole.STUDENT)


@router.post(
    "",
    response_model=ResultResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.TEACHER))],
)
async def create_result(
    payload: ResultCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Enter marks for one student. Percentage, grade and gpa are derived."""
    try:
        return await service.create_result(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/bulk",
    response_model=BulkResultResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.TEACHER))],
)
async def create_bulk_results(
    payload: ResultBulkCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.create_bulk_results(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=ResultListResponse,
    dependencies=[Depends(require_roles(*SCHOOL_MEMBERS))],
)
async def list_results(
    student_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
    subject: Optional[str] = None,
    assessment_type: Optional[AssessmentType] = None,
    term: Optional[Term] = None,
    academic_year: Optional[str] = None,
    is_published: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.list_results(
            db,
            current_user,
            student_id=student_id,
            class_id=class_id,
            subject=subject,
            assessment_type=assessment_type,
            term=term,
            academic_year=academic_year,
            is_published=is_published,
            page=page,
            limit=limit,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/report-card",
    response_model=ReportCardResponse,
    dependencies=[Depends(require_roles(*SCHOOL_MEMBERS))],
)
async def get_student_report_card(
    term: Term,
    academic_year: str,
    student_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Published results of one student for a term; students may omit student_id."""
    try:
        return await service.get_student_report_card(db, current_user, student_id, term, academic_year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/class-results",
    response_model=ClassResultsResponse,
    dependencies=[Depends(require_roles(*STAFF))],
)
async def get_class_results(
    class_id: UUID,
    subject: str,
    term: Term,
    academic_year: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_class_results(db, current_user, class_id, subject, term, academic_year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/subjects",
    response_model=SubjectResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.SCHOOL_ADMIN))],
)
async def create_subject(
    payload: SubjectCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Add a subject to the caller's school catalog; codes are unique per school."""
    try:
        return await service.create_subject(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/subjects/{school_id}",
    response_model=List[SubjectResponse],
    dependencies=[Depends(require_roles(*STAFF))],
)
async def list_subjects(
    school_id: str,
    grade: Optional[int] = Query(None, ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.list_subjects(db, current_user, school_id, grade)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{result_id}",
    response_model=ResultResponse,
    dependencies=[Depends(require_roles(*STAFF))],
)
async def update_result(
    result_id: str,
    payload: ResultUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Correct marks or publish. Mark changes are kept in the result's revision trail."""
    try:
        return await service.update_result(db, current_user, result_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{result_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(*STAFF))],
)
async def delete_result(
    result_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_result(db, current_user, result_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
