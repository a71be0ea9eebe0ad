"""Results service: marks entry, corrections with revision trail, report cards and the subject catalog."""

import logging
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from school_api.auth.models import User
from school_api.auth.policy import Action, authorize
from school_api.auth.schemas import CurrentUser
from school_api.core.enums import AssessmentType, Term, UserRole
from school_api.core.exceptions import ServiceError, parse_uuid
from school_api.core.grading import GRADE_LETTERS, calculate_percentage, default_grade_scale, grade_for, mean
from school_api.core.models import Result, ResultRevision, Subject
from school_api.core.services import (
    get_class_of,
    get_class_or_404,
    get_school_or_404,
    get_student_or_404,
    taught_class_ids,
    total_pages,
)
from school_api.db.session import utcnow

from .schemas import (
    BulkResultResponse,
    ClassResultEntry,
    ClassResultStatistics,
    ClassResultsResponse,
    ReportCardAssessment,
    ReportCardResponse,
    ReportCardSubject,
    ReportCardSummary,
    ResultBulkCreate,
    ResultCreate,
    ResultListResponse,
    ResultResponse,
    ResultUpdate,
    SubjectCreate,
    SubjectResponse,
)

logger = logging.getLogger(__name__)

NOT_ASSIGNED_MESSAGE = "You are not assigned to teach this class/subject"
DEFAULT_REVISION_REASON = "Marks correction"


def _to_response(r: Result) -> ResultResponse:
    return ResultResponse.model_validate(r)


def _check_marks(marks_obtained: float, total_marks: float) -> None:
    if marks_obtained > total_marks:
        raise ServiceError("Marks obtained cannot exceed total marks", status.HTTP_400_BAD_REQUEST)


def _apply_marks(result: Result, marks_obtained: float, total_marks: float) -> None:
    """Store marks and the percentage/grade/gpa derived from them."""
    result.marks_obtained = marks_obtained
    result.total_marks = total_marks
    result.percentage = calculate_percentage(marks_obtained, total_marks)
    result.grade, result.gpa = grade_for(result.percentage)


def _new_result(actor: CurrentUser, school_class, student_id: UUID, marks_obtained: float, **fields) -> Result:
    grading = fields.pop("grading", None)
    result = Result(
        student_id=student_id,
        class_id=school_class.id,
        school_id=school_class.school_id,
        teacher_id=actor.id,
        grading=grading.model_dump() if grading else None,
        revisions=[],
        **fields,
    )
    _apply_marks(result, marks_obtained, fields["total_marks"])
    return result


# ----- Writes -----
async def create_result(
    db: AsyncSession,
    actor: CurrentUser,
    payload: ResultCreate,
) -> ResultResponse:
    school_class = await get_class_or_404(db, payload.class_id)
    authorize(actor, Action.RECORD, school_class, message=NOT_ASSIGNED_MESSAGE)

    student = await get_student_or_404(db, payload.student_id)
    if student.class_id != school_class.id:
        raise ServiceError("Student is not in this class", status.HTTP_400_BAD_REQUEST)
    _check_marks(payload.marks_obtained, payload.total_marks)

    existing = await db.execute(
        select(Result.id).where(
            Result.student_id == payload.student_id,
            Result.subject == payload.subject,
            Result.assessment_type == payload.assessment_type.value,
            Result.term == payload.term.value,
            Result.academic_year == payload.academic_year,
        )
    )
    if existing.first():
        raise ServiceError(
            "Result already exists for this student, subject, and assessment",
            status.HTTP_409_CONFLICT,
        )

    result = _new_result(
        actor,
        school_class,
        student.id,
        payload.marks_obtained,
        subject=payload.subject,
        subject_code=payload.subject_code,
        assessment_type=payload.assessment_type.value,
        assessment_name=payload.assessment_name,
        total_marks=payload.total_marks,
        term=payload.term.value,
        academic_year=payload.academic_year,
        exam_date=payload.exam_date,
        remarks=payload.remarks,
        grading=payload.grading,
        is_published=payload.is_published,
    )
    db.add(result)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Duplicate result for student %s in %s", payload.student_id, payload.subject)
        raise ServiceError(
            "Result already exists for this student, subject, and assessment",
            status.HTTP_409_CONFLICT,
        )
    await db.refresh(result)
    logger.info("Result %s entered by %s", result.id, actor.id)
    return _to_response(result)


async def create_bulk_results(
    db: AsyncSession,
    actor: CurrentUser,
    payload: ResultBulkCreate,
) -> BulkResultResponse:
    """Enter one assessment for many students in a single transaction."""
    school_class = await get_class_or_404(db, payload.class_id)
    authorize(actor, Action.RECORD, school_class, message=NOT_ASSIGNED_MESSAGE)

    student_ids = [entry.student_id for entry in payload.results]
    if len(set(student_ids)) != len(student_ids):
        raise ServiceError("Each student may appear only once per batch", status.HTTP_400_BAD_REQUEST)
    for entry in payload.results:
        _check_marks(entry.marks_obtained, payload.total_marks)

    enrolled = await db.execute(
        select(User.id).where(
            User.id.in_(student_ids),
            User.role == UserRole.STUDENT.value,
            User.class_id == school_class.id,
        )
    )
    if len(set(enrolled.scalars().all())) != len(student_ids):
        raise ServiceError("Some students are not in this class", status.HTTP_400_BAD_REQUEST)

    existing = await db.execute(
        select(Result.id).where(
            Result.student_id.in_(student_ids),
            Result.subject == payload.subject,
            Result.assessment_type == payload.assessment_type.value,
            Result.term == payload.term.value,
            Result.academic_year == payload.academic_year,
        ).limit(1)
    )
    if existing.first():
        raise ServiceError("Results already exist for some students", status.HTTP_409_CONFLICT)

    results = [
        _new_result(
            actor,
            school_class,
            entry.student_id,
            entry.marks_obtained,
            subject=payload.subject,
            subject_code=payload.subject_code,
            assessment_type=payload.assessment_type.value,
            assessment_name=payload.assessment_name,
            total_marks=payload.total_marks,
            term=payload.term.value,
            academic_year=payload.academic_year,
            exam_date=payload.exam_date,
            remarks=entry.remarks,
            grading=payload.grading,
            is_published=payload.is_published,
        )
        for entry in payload.results
    ]
    db.add_all(results)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Bulk results for class %s rejected by unique index", payload.class_id)
        raise ServiceError("Results already exist for some students", status.HTTP_409_CONFLICT)
    logger.info("Bulk results: %d entered for class %s by %s", len(results), school_class.id, actor.id)
    return BulkResultResponse(created=len(results), results=[_to_response(r) for r in results])


async def _get_result_for_change(db: AsyncSession, actor: CurrentUser, result_id: str, verb: str) -> Result:
    result = await db.get(Result, parse_uuid(result_id, "result"))
    if not result:
        raise ServiceError("Result not found", status.HTTP_404_NOT_FOUND)
    authorize(
        actor,
        Action.MODIFY,
        result,
        message=f"You can only {verb} results you entered or that belong to your school",
    )
    return result


async def update_result(
    db: AsyncSession,
    actor: CurrentUser,
    result_id: str,
    payload: ResultUpdate,
) -> ResultResponse:
    """Patch a result. A change of marks_obtained appends one revision; earlier revisions are never touched."""
    result = await _get_result_for_change(db, actor, result_id, "update")

    if payload.marks_obtained is not None or payload.total_marks is not None:
        new_marks = payload.marks_obtained if payload.marks_obtained is not None else result.marks_obtained
        new_total = payload.total_marks if payload.total_marks is not None else result.total_marks
        _check_marks(new_marks, new_total)

        if payload.marks_obtained is not None and payload.marks_obtained != result.marks_obtained:
            result.revisions.append(
                ResultRevision(
                    old_marks=result.marks_obtained,
                    new_marks=payload.marks_obtained,
                    reason=payload.revision_reason or DEFAULT_REVISION_REASON,
                    updated_by=actor.id,
                )
            )
        _apply_marks(result, new_marks, new_total)

    if "remarks" in payload.model_fields_set:
        result.remarks = payload.remarks
    if payload.is_published is not None:
        result.is_published = payload.is_published
    result.updated_at = utcnow()

    await db.commit()
    await db.refresh(result)
    logger.info("Result %s updated by %s", result.id, actor.id)
    return _to_response(result)


async def delete_result(db: AsyncSession, actor: CurrentUser, result_id: str) -> None:
    result = await _get_result_for_change(db, actor, result_id, "delete")
    await db.delete(result)
    await db.commit()
    logger.info("Result %s deleted by %s", result_id, actor.id)


# ----- Reads -----
async def _scope_conditions(db: AsyncSession, actor: CurrentUser) -> List:
    if actor.role == UserRole.SCHOOL_ADMIN:
        return [Result.school_id == actor.school_id]
    if actor.role == UserRole.TEACHER:
        class_ids = await taught_class_ids(db, actor.id)
        return [or_(Result.teacher_id == actor.id, Result.class_id.in_(class_ids))]
    if actor.role == UserRole.STUDENT:
        # Students never see unpublished marks, whatever the filters say
        return [Result.student_id == actor.id, Result.is_published.is_(True)]
    raise ServiceError("You do not have permission to view results", status.HTTP_403_FORBIDDEN)


async def list_results(
    db: AsyncSession,
    actor: CurrentUser,
    *,
    student_id: Optional[UUID] = None,
    class_id: Optional[UUID] = None,
    subject: Optional[str] = None,
    assessment_type: Optional[AssessmentType] = None,
    term: Optional[Term] = None,
    academic_year: Optional[str] = None,
    is_published: Optional[bool] = None,
    page: int = 1,
    limit: int = 10,
) -> ResultListResponse:
    conditions = await _scope_conditions(db, actor)
    if student_id:
        conditions.append(Result.student_id == student_id)
    if class_id:
        conditions.append(Result.class_id == class_id)
    if subject:
        conditions.append(Result.subject == subject)
    if assessment_type:
        conditions.append(Result.assessment_type == assessment_type.value)
    if term:
        conditions.append(Result.term == term.value)
    if academic_year:
        conditions.append(Result.academic_year == academic_year)
    if is_published is not None:
        conditions.append(Result.is_published.is_(is_published))

    total_result = await db.execute(select(func.count(Result.id)).where(*conditions))
    total = total_result.scalar_one()

    stmt = (
        select(Result)
        .where(*conditions)
        .order_by(Result.exam_date.desc(), Result.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = await db.execute(stmt)
    return ResultListResponse(
        results=[_to_response(r) for r in rows.scalars().all()],
        total=total,
        total_pages=total_pages(total, limit),
        current_page=page,
    )


async def get_student_report_card(
    db: AsyncSession,
    actor: CurrentUser,
    student_id: Optional[UUID],
    term: Term,
    academic_year: str,
) -> ReportCardResponse:
    """Published results for one student and term, grouped by subject."""
    if actor.role == UserRole.STUDENT:
        if student_id is not None and student_id != actor.id:
            raise ServiceError("You can only view your own report card", status.HTTP_403_FORBIDDEN)
        student_id = actor.id
    elif student_id is None:
        raise ServiceError("student_id is required", status.HTTP_400_BAD_REQUEST)

    student = await get_student_or_404(db, student_id)
    authorize(
        actor,
        Action.VIEW,
        student,
        school_class=await get_class_of(db, student),
        message="Student not found in your classes or school",
    )

    rows = await db.execute(
        select(Result)
        .where(
            Result.student_id == student.id,
            Result.term == term.value,
            Result.academic_year == academic_year,
            Result.is_published.is_(True),
        )
        .order_by(Result.subject, Result.exam_date)
    )
    results = rows.scalars().all()

    by_subject: Dict[str, List[Result]] = {}
    for r in results:
        by_subject.setdefault(r.subject, []).append(r)

    subjects: List[ReportCardSubject] = []
    for subject, subject_results in by_subject.items():
        marks = sum(r.total_marks for r in subject_results)
        obtained = sum(r.marks_obtained for r in subject_results)
        percentage = calculate_percentage(obtained, marks)
        subjects.append(
            ReportCardSubject(
                subject=subject,
                subject_code=subject_results[0].subject_code,
                assessments=[
                    ReportCardAssessment(
                        result_id=r.id,
                        assessment_type=r.assessment_type,
                        assessment_name=r.assessment_name,
                        exam_date=r.exam_date,
                        marks_obtained=r.marks_obtained,
                        total_marks=r.total_marks,
                        percentage=r.percentage,
                        grade=r.grade,
                        gpa=r.gpa,
                    )
                    for r in subject_results
                ],
                total_marks=marks,
                total_obtained=obtained,
                percentage=round(percentage, 2),
                gpa=round(mean([r.gpa for r in subject_results]), 2),
                grade=grade_for(percentage)[0],
            )
        )

    total_marks = sum(r.total_marks for r in results)
    total_obtained = sum(r.marks_obtained for r in results)
    overall_percentage = calculate_percentage(total_obtained, total_marks) if total_marks > 0 else 0.0
    # Failing (0.0) assessments carry no grade points and are left out
    overall_gpa = mean([r.gpa for r in results if r.gpa])

    return ReportCardResponse(
        student_id=student.id,
        student_name=student.full_name,
        student_number=student.student_number,
        class_id=student.class_id,
        term=term.value,
        academic_year=academic_year,
        subjects=subjects,
        summary=ReportCardSummary(
            total_subjects=len(by_subject),
            total_assessments=len(results),
            total_marks=total_marks,
            total_obtained=total_obtained,
            overall_percentage=round(overall_percentage, 2),
            overall_gpa=round(overall_gpa, 2),
            overall_grade=grade_for(overall_percentage)[0],
        ),
    )


async def get_class_results(
    db: AsyncSession,
    actor: CurrentUser,
    class_id: UUID,
    subject: str,
    term: Term,
    academic_year: str,
) -> ClassResultsResponse:
    """Average/highest/lowest percentage and grade histogram for one class, subject and term."""
    school_class = await get_class_or_404(db, class_id)
    authorize(actor, Action.VIEW, school_class, message="Class not found in your classes or school")

    rows = await db.execute(
        select(Result, User)
        .join(User, User.id == Result.student_id)
        .where(
            Result.class_id == school_class.id,
            Result.subject == subject,
            Result.term == term.value,
            Result.academic_year == academic_year,
        )
        .order_by(User.last_name, User.first_name)
    )
    pairs = rows.all()

    entries: List[ClassResultEntry] = []
    distribution: Dict[str, int] = {letter: 0 for letter in GRADE_LETTERS}
    for result, student in pairs:
        distribution[result.grade] = distribution.get(result.grade, 0) + 1
        entries.append(
            ClassResultEntry(
                result_id=result.id,
                student_id=student.id,
                student_name=student.full_name,
                roll_number=student.roll_number,
                assessment_type=result.assessment_type,
                assessment_name=result.assessment_name,
                marks_obtained=result.marks_obtained,
                total_marks=result.total_marks,
                percentage=result.percentage,
                grade=result.grade,
                is_published=result.is_published,
            )
        )

    percentages = [e.percentage for e in entries]
    return ClassResultsResponse(
        class_id=school_class.id,
        subject=subject,
        term=term.value,
        academic_year=academic_year,
        results=entries,
        statistics=ClassResultStatistics(
            total_students=len(entries),
            average=round(mean(percentages), 2),
            highest=max(percentages) if percentages else 0.0,
            lowest=min(percentages) if percentages else 0.0,
            grade_distribution=distribution,
        ),
    )


# ----- Subject catalog -----
def _subject_response(s: Subject) -> SubjectResponse:
    return SubjectResponse.model_validate(s)


async def create_subject(
    db: AsyncSession,
    actor: CurrentUser,
    payload: SubjectCreate,
) -> SubjectResponse:
    if actor.role != UserRole.SCHOOL_ADMIN or actor.school_id is None:
        raise ServiceError("Only school admins can create subjects", status.HTTP_403_FORBIDDEN)

    code = payload.code.strip().upper()
    existing = await db.execute(
        select(Subject.id).where(Subject.school_id == actor.school_id, Subject.code == code)
    )
    if existing.first():
        raise ServiceError("Subject code already exists in this school", status.HTTP_409_CONFLICT)

    if payload.teachers:
        found = await db.execute(
            select(User.id).where(
                User.id.in_(payload.teachers),
                User.role == UserRole.TEACHER.value,
                User.school_id == actor.school_id,
            )
        )
        if len(set(found.scalars().all())) != len(set(payload.teachers)):
            raise ServiceError("Subject teachers must be teachers of this school", status.HTTP_400_BAD_REQUEST)

    subject = Subject(
        school_id=actor.school_id,
        name=payload.name.strip(),
        code=code,
        description=payload.description,
        grade=payload.grade,
        credits=payload.credits,
        is_optional=payload.is_optional,
        is_active=True,
        marking_scheme=payload.marking_scheme.model_dump(),
        grading_criteria=payload.grading_criteria.model_dump(mode="json"),
        grade_scale=(
            [entry.model_dump() for entry in payload.grade_scale]
            if payload.grade_scale
            else default_grade_scale()
        ),
        teachers=[str(t) for t in dict.fromkeys(payload.teachers)],
    )
    db.add(subject)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Subject code %s rejected by unique index", code)
        raise ServiceError("Subject code already exists in this school", status.HTTP_409_CONFLICT)
    await db.refresh(subject)
    logger.info("Subject %s (%s) created in school %s", subject.id, code, actor.school_id)
    return _subject_response(subject)


async def list_subjects(
    db: AsyncSession,
    actor: CurrentUser,
    school_id: str,
    grade: Optional[int] = None,
) -> List[SubjectResponse]:
    school = await get_school_or_404(db, parse_uuid(school_id, "school"))
    authorize(actor, Action.VIEW, school, message="You can only view subjects of your own school")

    stmt = select(Subject).where(Subject.school_id == school.id, Subject.is_active.is_(True))
    if grade is not None:
        stmt = stmt.where(Subject.grade == grade)
    rows = await db.execute(stmt.order_by(Subject.name))
    return [_subject_response(s) for s in rows.scalars().all()]
