"""Lookups shared by the attendance, results and user-management services."""

from math import ceil
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.models import User
from school_api.core.enums import UserRole
from school_api.core.exceptions import ServiceError
from school_api.core.models import ClassSubject, ClassSubjectTeacher, School, SchoolClass


async def get_school_or_404(db: AsyncSession, school_id: UUID) -> School:
    school = await db.get(School, school_id)
    if not school:
        raise ServiceError("School not found", status.HTTP_404_NOT_FOUND)
    return school


async def get_class_or_404(db: AsyncSession, class_id: UUID, lock: bool = False) -> SchoolClass:
    """With ``lock`` the class row is held FOR UPDATE until the transaction ends."""
    school_class = await db.get(SchoolClass, class_id, with_for_update=lock or None)
    if not school_class:
        raise ServiceError("Class not found", status.HTTP_404_NOT_FOUND)
    return school_class


async def get_student_or_404(db: AsyncSession, student_id: UUID) -> User:
    student = await db.get(User, student_id)
    if not student or student.role != UserRole.STUDENT:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    return student


async def get_user_or_404(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise ServiceError("User not found", status.HTTP_404_NOT_FOUND)
    return user


async def get_class_of(db: AsyncSession, user: User) -> Optional[SchoolClass]:
    if user.class_id is None:
        return None
    return await db.get(SchoolClass, user.class_id)


async def taught_class_ids(db: AsyncSession, teacher_id: UUID) -> List[UUID]:
    """Classes where the teacher is class teacher, a subject teacher or a subject's named teacher."""
    stmt = (
        select(SchoolClass.id)
        .where(
            or_(
                SchoolClass.class_teacher_id == teacher_id,
                SchoolClass.id.in_(
                    select(ClassSubjectTeacher.class_id).where(ClassSubjectTeacher.teacher_id == teacher_id)
                ),
                SchoolClass.id.in_(
                    select(ClassSubject.class_id).where(ClassSubject.teacher_id == teacher_id)
                ),
            )
        )
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


def total_pages(total: int, limit: int) -> int:
    return ceil(total / limit) if limit else 0
