"""School (tenant) management and the per-school SMS quota counter."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.models import User
from school_api.auth.policy import Action, authorize
from school_api.auth.schemas import CurrentUser
from school_api.core.config import settings as app_settings
from school_api.core.enums import UserRole
from school_api.core.exceptions import ServiceError, parse_uuid
from school_api.core.models import School, SchoolClass
from school_api.core.services import get_school_or_404, total_pages
from school_api.db.session import utcnow

from .schemas import (
    SchoolCreate,
    SchoolListResponse,
    SchoolResponse,
    SchoolSettings,
    SchoolStats,
    SchoolUpdate,
    SmsQuota,
    SmsQuotaUpdate,
    SmsUsage,
)

logger = logging.getLogger(__name__)

EMAIL_TAKEN_MESSAGE = "School with this email already exists"


def _to_response(s: School) -> SchoolResponse:
    return SchoolResponse(
        id=s.id,
        name=s.name,
        address=s.address,
        city=s.city,
        state=s.state,
        country=s.country,
        zip_code=s.zip_code,
        phone=s.phone,
        email=s.email,
        website=s.website,
        admin_id=s.admin_id,
        is_active=s.is_active,
        settings=SchoolSettings(
            academic_year=s.academic_year,
            term_system=s.term_system,
            grade_system=s.grade_system,
            attendance_threshold=s.attendance_threshold,
        ),
        sms_quota=SmsQuota(
            monthly_limit=s.sms_monthly_limit,
            used=s.sms_used,
            reset_date=s.sms_reset_date,
        ),
        allowed_domains=s.allowed_domains or [],
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


def _apply_settings(school: School, school_settings: SchoolSettings) -> None:
    school.academic_year = school_settings.academic_year
    school.term_system = school_settings.term_system.value
    school.grade_system = school_settings.grade_system.value
    school.attendance_threshold = school_settings.attendance_threshold


async def _email_in_use(db: AsyncSession, email: str, exclude_id: Optional[UUID] = None) -> bool:
    stmt = select(School.id).where(func.lower(School.email) == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(School.id != exclude_id)
    result = await db.execute(stmt)
    return result.first() is not None


async def create_school(db: AsyncSession, payload: SchoolCreate) -> SchoolResponse:
    """Create a school and attach its SCHOOL_ADMIN to it."""
    if await _email_in_use(db, payload.email):
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT)

    admin = await db.get(User, payload.admin_id)
    if not admin:
        raise ServiceError("Admin user not found", status.HTTP_404_NOT_FOUND)
    if admin.role != UserRole.SCHOOL_ADMIN:
        raise ServiceError(
            "User must have SCHOOL_ADMIN role to be assigned as school admin",
            status.HTTP_400_BAD_REQUEST,
        )
    if admin.school_id is not None:
        raise ServiceError("Admin is already assigned to another school", status.HTTP_409_CONFLICT)

    school = School(
        name=payload.name,
        address=payload.address,
        city=payload.city,
        state=payload.state,
        country=payload.country,
        zip_code=payload.zip_code,
        phone=payload.phone,
        email=payload.email.lower(),
        website=payload.website,
        admin_id=admin.id,
        is_active=True,
        sms_monthly_limit=app_settings.default_sms_monthly_limit,
        sms_used=0,
        sms_reset_date=utcnow(),
        allowed_domains=payload.allowed_domains,
    )
    _apply_settings(school, payload.settings)
    try:
        db.add(school)
        await db.flush()  # to populate school.id
        admin.school_id = school.id
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning("School email %s rejected by unique index", payload.email)
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT) from e
    await db.refresh(school)
    logger.info("School %s created with admin %s", school.id, admin.id)
    return _to_response(school)


async def list_schools(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
) -> SchoolListResponse:
    conditions = []
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(
            or_(
                func.lower(School.name).like(pattern),
                func.lower(School.email).like(pattern),
                func.lower(School.city).like(pattern),
            )
        )

    total_result = await db.execute(select(func.count(School.id)).where(*conditions))
    total = total_result.scalar_one()
    rows = await db.execute(
        select(School)
        .where(*conditions)
        .order_by(School.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return SchoolListResponse(
        schools=[_to_response(s) for s in rows.scalars().all()],
        total=total,
        total_pages=total_pages(total, limit),
        current_page=page,
    )


async def _get_school_for(db: AsyncSession, actor: CurrentUser, school_id: str) -> School:
    school = await get_school_or_404(db, parse_uuid(school_id, "school"))
    authorize(actor, Action.VIEW, school, message="You can only access your own school")
    return school


async def get_school(db: AsyncSession, actor: CurrentUser, school_id: str) -> SchoolResponse:
    return _to_response(await _get_school_for(db, actor, school_id))


async def update_school(
    db: AsyncSession,
    actor: CurrentUser,
    school_id: str,
    payload: SchoolUpdate,
) -> SchoolResponse:
    school = await get_school_or_404(db, parse_uuid(school_id, "school"))
    authorize(actor, Action.MANAGE, school)

    if payload.email and await _email_in_use(db, payload.email, exclude_id=school.id):
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT)

    changes = payload.model_dump(exclude_unset=True, exclude={"settings"})
    for field, value in changes.items():
        if value is None and field != "website":
            continue
        if field == "email":
            value = value.lower()
        setattr(school, field, value)
    if payload.settings is not None:
        # Only the settings keys actually sent are changed
        for field, value in payload.settings.model_dump(exclude_unset=True, mode="json").items():
            setattr(school, field, value)
    school.updated_at = utcnow()

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning("School %s update rejected by unique index", school_id)
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT) from e
    await db.refresh(school)
    logger.info("School %s updated by %s", school.id, actor.id)
    return _to_response(school)


async def delete_school(db: AsyncSession, actor: CurrentUser, school_id: str) -> None:
    """Hard delete. Users are detached; classes and their records go with the school."""
    school = await get_school_or_404(db, parse_uuid(school_id, "school"))
    authorize(actor, Action.MANAGE, school)

    await db.execute(
        update(User).where(User.school_id == school.id).values(school_id=None, class_id=None)
    )
    await db.delete(school)
    await db.commit()
    logger.info("School %s deleted by %s", school_id, actor.id)


# ----- SMS quota -----
async def update_sms_quota(
    db: AsyncSession,
    actor: CurrentUser,
    school_id: str,
    payload: SmsQuotaUpdate,
) -> SchoolResponse:
    school = await get_school_or_404(db, parse_uuid(school_id, "school"))
    authorize(actor, Action.MANAGE, school)

    school.sms_monthly_limit = payload.monthly_limit
    school.sms_reset_date = utcnow()
    await db.commit()
    await db.refresh(school)
    logger.info("School %s SMS limit set to %d", school.id, payload.monthly_limit)
    return _to_response(school)


async def increment_sms_usage(db: AsyncSession, school_id: UUID, count: int = 1) -> None:
    """Record sent messages. Single UPDATE so concurrent senders cannot lose increments."""
    result = await db.execute(
        update(School).where(School.id == school_id).values(sms_used=School.sms_used + count)
    )
    if result.rowcount == 0:
        raise ServiceError("School not found", status.HTTP_404_NOT_FOUND)
    await db.commit()


def reset_sms_usage_if_due(school: School, now: datetime) -> bool:
    """Zero the counter when ``now`` falls in a later calendar month than the last reset."""
    last = school.sms_reset_date
    if last is not None and (last.year, last.month) >= (now.year, now.month):
        return False
    school.sms_used = 0
    school.sms_reset_date = now
    return True


async def reset_monthly_sms_usage(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Apply the monthly reset to every school that is due; returns how many were reset."""
    now = now or utcnow()
    rows = await db.execute(select(School))
    reset = [s for s in rows.scalars().all() if reset_sms_usage_if_due(s, now)]
    await db.commit()
    logger.info("SMS usage reset for %d school(s)", len(reset))
    return len(reset)


async def get_school_stats(db: AsyncSession, actor: CurrentUser, school_id: str) -> SchoolStats:
    school = await _get_school_for(db, actor, school_id)

    role_counts = await db.execute(
        select(User.role, func.count(User.id))
        .where(User.school_id == school.id, User.role.in_([UserRole.STUDENT.value, UserRole.TEACHER.value]))
        .group_by(User.role)
    )
    counts = dict(role_counts.all())
    class_count = await db.execute(
        select(func.count(SchoolClass.id)).where(SchoolClass.school_id == school.id)
    )
    return SchoolStats(
        total_students=counts.get(UserRole.STUDENT.value, 0),
        total_teachers=counts.get(UserRole.TEACHER.value, 0),
        total_classes=class_count.scalar_one(),
        sms_usage=SmsUsage(
            used=school.sms_used,
            limit=school.sms_monthly_limit,
            remaining=max(0, school.sms_monthly_limit - school.sms_used),
        ),
    )
