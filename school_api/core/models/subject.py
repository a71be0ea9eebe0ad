"""Per-school subject catalog (name, code, marking scheme and grade scale)."""
import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid

from school_api.db.session import Base, utcnow


class Subject(Base):
    __tablename__ = "subjects"
    __table_args__ = (
        UniqueConstraint("school_id", "code", name="uq_subject_school_code"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    # Stored uppercase
    code = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    grade = Column(Integer, nullable=False)
    credits = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    is_optional = Column(Boolean, nullable=False, default=False)
    marking_scheme = Column(JSON, nullable=False)
    grading_criteria = Column(JSON, nullable=False)
    grade_scale = Column(JSON, nullable=False)
    # Teacher ids (as strings) qualified to teach the subject
    teachers = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
