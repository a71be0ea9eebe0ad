"""Schools API router."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.dependencies import get_current_user
from school_api.auth.rbac import require_roles
from school_api.auth.schemas import CurrentUser
from school_api.core.enums import UserRole
from school_api.core.exceptions import ServiceError
from school_api.db.session import get_db

from . import service
from .schemas import (
    SchoolCreate,
    SchoolListResponse,
    SchoolResponse,
    SchoolStats,
    SchoolUpdate,
    SmsQuotaUpdate,
)

router = APIRouter(prefix="/api/v1/schools", tags=["schools"])

ADMINS = (UserRole.SUPER_ADMIN, UserRole.SCHOOL_ADMIN)


@router.post(
    "",
    response_model=SchoolResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.SUPER_ADMIN))],
)
async def create_school(
    payload: SchoolCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await service.create_school(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=SchoolListResponse,
    dependencies=[Depends(require_roles(UserRole.SUPER_ADMIN))],
)
async def list_schools(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await service.list_schools(db, page, limit, search)


@router.get(
    "/{school_id}",
    response_model=SchoolResponse,
    dependencies=[Depends(require_roles(*ADMINS))],
)
async def get_school(
    school_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_school(db, current_user, school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch(
    "/{school_id}",
    response_model=SchoolResponse,
    dependencies=[Depends(require_roles(UserRole.SUPER_ADMIN))],
)
async def update_school(
    school_id: str,
    payload: SchoolUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_school(db, current_user, school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{school_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(UserRole.SUPER_ADMIN))],
)
async def delete_school(
    school_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_school(db, current_user, school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/{school_id}/sms-quota",
    response_model=SchoolResponse,
    dependencies=[Depends(require_roles(UserRole.SUPER_ADMIN))],
)
async def update_sms_quota(
    school_id: str,
    payload: SmsQuotaUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.update_sms_quota(db, current_user, school_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "/{school_id}/stats",
    response_model=SchoolStats,
    dependencies=[Depends(require_roles(*ADMINS))],
)
async def get_school_stats(
    school_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_school_stats(db, current_user, school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
