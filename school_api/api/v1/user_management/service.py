"""Teachers, students and classes inside a school."""

import logging
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.models import User
from school_api.auth.policy import Action, authorize
from school_api.auth.schemas import CurrentUser, UserResponse
from school_api.auth.security import hash_password
from school_api.core.enums import UserRole
from school_api.core.exceptions import ServiceError, parse_uuid
from school_api.core.models import (
    ClassSubject,
    ClassSubjectTeacher,
    SchoolClass,
    TeacherClassAssignment,
)
from school_api.core.services import (
    get_class_of,
    get_class_or_404,
    get_school_or_404,
    get_user_or_404,
    taught_class_ids,
    total_pages,
)
from school_api.db.session import utcnow

from .schemas import (
    ClassCreate,
    ClassResponse,
    ClassSubjectOut,
    SchoolUserStats,
    StudentCreate,
    TeacherCreate,
    UserListResponse,
    UserUpdate,
)

logger = logging.getLogger(__name__)

EMAIL_TAKEN_MESSAGE = "User with this email already exists"
INVALID_TEACHER_MESSAGE = "Class teacher must be a valid teacher"


async def _email_in_use(db: AsyncSession, email: str, exclude_id: Optional[UUID] = None) -> bool:
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    result = await db.execute(stmt)
    return result.first() is not None


async def _school_for_create(db: AsyncSession, actor: CurrentUser, school_id: UUID, noun: str):
    school = await get_school_or_404(db, school_id)
    authorize(actor, Action.MANAGE, school, message=f"You can only create {noun} for your own school")
    return school


async def _classes_in_school(db: AsyncSession, school_id: UUID, class_ids: Iterable[UUID]) -> List[UUID]:
    """Return the given class ids, raising 400 unless every one belongs to the school."""
    wanted = list(dict.fromkeys(class_ids))
    if not wanted:
        return []
    rows = await db.execute(
        select(SchoolClass.id).where(SchoolClass.id.in_(wanted), SchoolClass.school_id == school_id)
    )
    found = set(rows.scalars().all())
    if len(found) != len(wanted):
        raise ServiceError("Some classes do not belong to the specified school", status.HTTP_400_BAD_REQUEST)
    return wanted


async def _teachers_in_school(db: AsyncSession, school_id: UUID, teacher_ids: Iterable[UUID], message: str) -> None:
    wanted = set(teacher_ids)
    if not wanted:
        return
    rows = await db.execute(
        select(User.id).where(
            User.id.in_(wanted),
            User.role == UserRole.TEACHER.value,
            User.school_id == school_id,
        )
    )
    if set(rows.scalars().all()) != wanted:
        raise ServiceError(message, status.HTTP_400_BAD_REQUEST)


def _user_fields(payload, exclude: set) -> Dict:
    data = payload.model_dump(exclude=exclude | {"password", "email", "school_id"})
    if data.get("gender") is not None:
        data["gender"] = data["gender"].value
    return data


async def _insert_user(db: AsyncSession, user: User, extra: Iterable = ()) -> User:
    email = user.email
    try:
        db.add(user)
        await db.flush()
        for row in extra:
            row.teacher_id = user.id
            db.add(row)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning("User email %s rejected by unique index", email)
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT) from e
    await db.refresh(user)
    return user


# ----- Teachers and students -----
async def create_teacher(db: AsyncSession, actor: CurrentUser, payload: TeacherCreate) -> UserResponse:
    if actor.role not in (UserRole.SCHOOL_ADMIN, UserRole.SUPER_ADMIN):
        raise ServiceError("Only school admins can create teachers", status.HTTP_403_FORBIDDEN)
    school = await _school_for_create(db, actor, payload.school_id, "teachers")
    if await _email_in_use(db, payload.email):
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT)
    class_ids = await _classes_in_school(db, school.id, payload.assigned_classes)

    teacher = User(
        school_id=school.id,
        email=payload.email.lower(),
        password_hash=hash_password(payload.password),
        role=UserRole.TEACHER.value,
        is_active=True,
        **_user_fields(payload, {"assigned_classes"}),
    )
    assignments = [TeacherClassAssignment(class_id=class_id) for class_id in class_ids]
    teacher = await _insert_user(db, teacher, assignments)
    logger.info("Teacher %s created in school %s by %s", teacher.id, school.id, actor.id)
    return UserResponse.model_validate(teacher)


async def create_student(db: AsyncSession, actor: CurrentUser, payload: StudentCreate) -> UserResponse:
    if actor.role not in (UserRole.SCHOOL_ADMIN, UserRole.SUPER_ADMIN):
        raise ServiceError("Only school admins can create students", status.HTTP_403_FORBIDDEN)
    school = await _school_for_create(db, actor, payload.school_id, "students")
    school_class = await get_class_or_404(db, payload.class_id)
    if school_class.school_id != school.id:
        raise ServiceError("Class does not belong to the specified school", status.HTTP_400_BAD_REQUEST)
    if await _email_in_use(db, payload.email):
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT)

    fields = _user_fields(payload, {"parent_details"})
    student = User(
        school_id=school.id,
        email=payload.email.lower(),
        password_hash=hash_password(payload.password),
        role=UserRole.STUDENT.value,
        is_active=True,
        parent_details=payload.parent_details.model_dump(mode="json") if payload.parent_details else None,
        **fields,
    )
    student = await _insert_user(db, student)
    logger.info("Student %s enrolled in class %s by %s", student.id, school_class.id, actor.id)
    return UserResponse.model_validate(student)


async def list_school_users(
    db: AsyncSession,
    actor: CurrentUser,
    school_id: str,
    role: UserRole,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
) -> UserListResponse:
    """Teachers or students of a school, newest first."""
    school = await get_school_or_404(db, parse_uuid(school_id, "school"))
    authorize(actor, Action.VIEW, school, message="You can only access users from your own school")

    conditions = [User.school_id == school.id, User.role == role.value]
    if actor.role == UserRole.TEACHER and role == UserRole.STUDENT:
        # Teachers only see the students of classes they teach
        conditions.append(User.class_id.in_(await taught_class_ids(db, actor.id)))
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(
            or_(
                func.lower(User.first_name).like(pattern),
                func.lower(User.last_name).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(User.employee_id).like(pattern),
                func.lower(User.student_number).like(pattern),
            )
        )

    total_result = await db.execute(select(func.count(User.id)).where(*conditions))
    total = total_result.scalar_one()
    rows = await db.execute(
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in rows.scalars().all()],
        total=total,
        total_pages=total_pages(total, limit),
        current_page=page,
    )


async def get_user(db: AsyncSession, actor: CurrentUser, user_id: str) -> UserResponse:
    user = await get_user_or_404(db, parse_uuid(user_id, "user"))
    authorize(actor, Action.VIEW, user, school_class=await get_class_of(db, user))
    return UserResponse.model_validate(user)


async def _replace_assignments(db: AsyncSession, teacher_id: UUID, class_ids: List[UUID]) -> None:
    await db.execute(delete(TeacherClassAssignment).where(TeacherClassAssignment.teacher_id == teacher_id))
    db.add_all(TeacherClassAssignment(teacher_id=teacher_id, class_id=class_id) for class_id in class_ids)


async def update_user(db: AsyncSession, actor: CurrentUser, user_id: str, payload: UserUpdate) -> UserResponse:
    user = await get_user_or_404(db, parse_uuid(user_id, "user"))
    authorize(actor, Action.MANAGE, user, message="You can only manage users from your own school")

    if payload.email and await _email_in_use(db, payload.email, exclude_id=user.id):
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT)

    changes = payload.model_dump(exclude_unset=True, exclude={"assigned_classes", "class_id"})
    if payload.class_id is not None:
        if user.role != UserRole.STUDENT:
            raise ServiceError("Only students can be moved between classes", status.HTTP_400_BAD_REQUEST)
        school_class = await get_class_or_404(db, payload.class_id)
        if school_class.school_id != user.school_id:
            raise ServiceError("Class does not belong to the specified school", status.HTTP_400_BAD_REQUEST)
        # Existing attendance and results keep the class they were recorded against
        user.class_id = school_class.id
    if payload.assigned_classes is not None:
        if user.role != UserRole.TEACHER:
            raise ServiceError("Only teachers can be assigned to classes", status.HTTP_400_BAD_REQUEST)
        class_ids = await _classes_in_school(db, user.school_id, payload.assigned_classes)
        await _replace_assignments(db, user.id, class_ids)

    for field, value in changes.items():
        if value is None:
            continue
        if field == "email":
            value = value.lower()
        elif field == "gender":
            value = value.value
        setattr(user, field, value)
    user.updated_at = utcnow()

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning("User %s update rejected by unique index", user_id)
        raise ServiceError(EMAIL_TAKEN_MESSAGE, status.HTTP_409_CONFLICT) from e
    await db.refresh(user)
    logger.info("User %s updated by %s", user.id, actor.id)
    return UserResponse.model_validate(user)


async def delete_user(db: AsyncSession, actor: CurrentUser, user_id: str) -> None:
    """Hard delete. A teacher is first detached from every class they teach."""
    user = await get_user_or_404(db, parse_uuid(user_id, "user"))
    authorize(actor, Action.MANAGE, user, message="You can only manage users from your own school")
    if user.id == actor.id:
        raise ServiceError("You cannot delete your own account", status.HTTP_400_BAD_REQUEST)

    if user.role == UserRole.TEACHER:
        await db.execute(delete(ClassSubjectTeacher).where(ClassSubjectTeacher.teacher_id == user.id))
        await db.execute(delete(TeacherClassAssignment).where(TeacherClassAssignment.teacher_id == user.id))
        await db.execute(
            update(SchoolClass).where(SchoolClass.class_teacher_id == user.id).values(class_teacher_id=None)
        )
        await db.execute(update(ClassSubject).where(ClassSubject.teacher_id == user.id).values(teacher_id=None))
    await db.delete(user)
    await db.commit()
    logger.info("User %s (%s) deleted by %s", user_id, user.role, actor.id)


# ----- Classes -----
def _class_response(c: SchoolClass, student_count: int = 0) -> ClassResponse:
    return ClassResponse(
        id=c.id,
        school_id=c.school_id,
        name=c.name,
        section=c.section,
        grade=c.grade,
        class_teacher_id=c.class_teacher_id,
        subject_teacher_ids=sorted(c.subject_teacher_ids, key=str),
        academic_year=c.academic_year,
        subjects=[ClassSubjectOut.model_validate(s) for s in c.subjects],
        schedule=c.schedule,
        capacity=c.capacity,
        description=c.description,
        is_active=c.is_active,
        student_count=student_count,
        created_at=c.created_at,
    )


async def create_class(db: AsyncSession, actor: CurrentUser, payload: ClassCreate) -> ClassResponse:
    school = await get_school_or_404(db, payload.school_id)
    authorize(actor, Action.MANAGE, school, message="You can only create classes for your own school")

    await _teachers_in_school(db, school.id, [payload.class_teacher_id], INVALID_TEACHER_MESSAGE)
    await _teachers_in_school(
        db, school.id, payload.subject_teacher_ids, "Subject teachers must be valid teachers of this school"
    )
    await _teachers_in_school(
        db,
        school.id,
        [s.teacher_id for s in payload.subjects if s.teacher_id],
        "Subject teachers must be valid teachers of this school",
    )

    subject_teacher_ids = list(dict.fromkeys(payload.subject_teacher_ids))
    school_class = SchoolClass(
        school_id=school.id,
        name=payload.name,
        section=payload.section,
        grade=payload.grade,
        class_teacher_id=payload.class_teacher_id,
        academic_year=payload.academic_year,
        schedule=payload.schedule.model_dump() if payload.schedule else None,
        capacity=payload.capacity,
        description=payload.description,
        is_active=True,
        subjects=[
            ClassSubject(name=s.name, code=s.code.upper(), teacher_id=s.teacher_id, credits=s.credits)
            for s in payload.subjects
        ],
        subject_teacher_links=[ClassSubjectTeacher(teacher_id=t) for t in subject_teacher_ids],
    )
    try:
        db.add(school_class)
        await db.flush()
        for teacher_id in dict.fromkeys([payload.class_teacher_id, *subject_teacher_ids]):
            db.add(TeacherClassAssignment(teacher_id=teacher_id, class_id=school_class.id))
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning("Duplicate class %s-%s in school %s", payload.name, payload.section, payload.school_id)
        raise ServiceError(
            "Class with this name and section already exists for the academic year",
            status.HTTP_409_CONFLICT,
        ) from e
    await db.refresh(school_class)
    logger.info("Class %s created in school %s by %s", school_class.id, school.id, actor.id)
    return _class_response(school_class)


async def _student_counts(db: AsyncSession, class_ids: List[UUID]) -> Dict[UUID, int]:
    if not class_ids:
        return {}
    rows = await db.execute(
        select(User.class_id, func.count(User.id))
        .where(User.class_id.in_(class_ids), User.role == UserRole.STUDENT.value)
        .group_by(User.class_id)
    )
    return dict(rows.all())


async def list_school_classes(db: AsyncSession, actor: CurrentUser, school_id: str) -> List[ClassResponse]:
    school = await get_school_or_404(db, parse_uuid(school_id, "school"))
    authorize(actor, Action.VIEW, school, message="You can only access classes from your own school")

    stmt = select(SchoolClass).where(SchoolClass.school_id == school.id)
    if actor.role == UserRole.TEACHER:
        stmt = stmt.where(SchoolClass.id.in_(await taught_class_ids(db, actor.id)))
    rows = await db.execute(stmt.order_by(SchoolClass.grade, SchoolClass.section))
    classes = rows.scalars().all()
    counts = await _student_counts(db, [c.id for c in classes])
    return [_class_response(c, counts.get(c.id, 0)) for c in classes]


async def get_school_user_stats(db: AsyncSession, actor: CurrentUser, school_id: str) -> SchoolUserStats:
    school = await get_school_or_404(db, parse_uuid(school_id, "school"))
    authorize(actor, Action.MANAGE, school, message="You can only access your own school")

    rows = await db.execute(
        select(User.role, User.is_active, func.count(User.id))
        .where(User.school_id == school.id, User.role.in_([UserRole.STUDENT.value, UserRole.TEACHER.value]))
        .group_by(User.role, User.is_active)
    )
    totals: Dict[str, int] = {}
    active: Dict[str, int] = {}
    for role, is_active, count in rows.all():
        totals[role] = totals.get(role, 0) + count
        if is_active:
            active[role] = active.get(role, 0) + count

    class_rows = await db.execute(select(SchoolClass.id, SchoolClass.capacity).where(SchoolClass.school_id == school.id))
    capacities = dict(class_rows.all())
    counts = await _student_counts(db, list(capacities))
    with_capacity = sum(1 for class_id, cap in capacities.items() if counts.get(class_id, 0) < cap)

    return SchoolUserStats(
        total_students=totals.get(UserRole.STUDENT.value, 0),
        total_teachers=totals.get(UserRole.TEACHER.value, 0),
        total_classes=len(capacities),
        active_students=active.get(UserRole.STUDENT.value, 0),
        active_teachers=active.get(UserRole.TEACHER.value, 0),
        classes_with_capacity=with_capacity,
    )
