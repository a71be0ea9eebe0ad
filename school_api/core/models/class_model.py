"""School classes (grade + section). Model named SchoolClass to avoid the Python 'class' keyword."""
import uuid
from typing import Set
from uuid import UUID

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from school_api.db.session import Base, utcnow


class SchoolClass(Base):
    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("school_id", "name", "section", "academic_year", name="uq_class_school_name_section_year"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    section = Column(String(20), nullable=False)
    grade = Column(Integer, nullable=False)
    # No FK: users.class_id already points at classes
    class_teacher_id = Column(Uuid, nullable=True, index=True)
    academic_year = Column(String(20), nullable=False)
    # {"start_time": "08:00", "end_time": "14:00", "days": ["monday", ...]}
    schedule = Column(JSON, nullable=True)
    capacity = Column(Integer, nullable=False, default=40)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    subjects = relationship(
        "ClassSubject", cascade="all, delete-orphan", lazy="selectin", order_by="ClassSubject.name"
    )
    subject_teacher_links = relationship(
        "ClassSubjectTeacher", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def subject_teacher_ids(self) -> Set[UUID]:
        return {link.teacher_id for link in self.subject_teacher_links}

    def teacher_ids(self) -> Set[UUID]:
        """Everyone who teaches this class: class teacher, subject teachers, named subject leads."""
        ids = set(self.subject_teacher_ids)
        if self.class_teacher_id:
            ids.add(self.class_teacher_id)
        ids.update(s.teacher_id for s in self.subjects if s.teacher_id)
        return ids


class ClassSubject(Base):
    """A subject taught in one class, each naming its own teacher."""

    __tablename__ = "class_subjects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(20), nullable=False)
    teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    credits = Column(Integer, nullable=False, default=1)


class ClassSubjectTeacher(Base):
    __tablename__ = "class_subject_teachers"
    __table_args__ = (
        UniqueConstraint("class_id", "teacher_id", name="uq_class_subject_teacher"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    teacher_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
