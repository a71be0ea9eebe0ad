import uuid

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from school_api.db.session import Base, utcnow


class Result(Base):
    """Marks for one student in one assessment."""

    __tablename__ = "results"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "subject", "assessment_type", "term", "academic_year",
            name="uq_result_student_assessment",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    # Teacher who entered the marks
    teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    subject = Column(String(100), nullable=False)
    subject_code = Column(String(20), nullable=True)
    assessment_type = Column(String(20), nullable=False)
    assessment_name = Column(String(255), nullable=False)
    marks_obtained = Column(Float, nullable=False)
    total_marks = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False)
    grade = Column(String(5), nullable=False)
    gpa = Column(Float, nullable=False)
    term = Column(String(20), nullable=False)
    academic_year = Column(String(20), nullable=False)
    exam_date = Column(Date, nullable=False)
    remarks = Column(Text, nullable=True)
    # {"weightage": 20, "category": "..."}
    grading = Column(JSON, nullable=True)
    is_published = Column(Boolean, nullable=False, default=False)
    is_notified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    revisions = relationship(
        "ResultRevision",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ResultRevision.created_at",
    )


class ResultRevision(Base):
    """Append-only trail of mark corrections on a result."""

    __tablename__ = "result_revisions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    result_id = Column(Uuid, ForeignKey("results.id", ondelete="CASCADE"), nullable=False, index=True)
    old_marks = Column(Float, nullable=False)
    new_marks = Column(Float, nullable=False)
    reason = Column(String(255), nullable=False)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
