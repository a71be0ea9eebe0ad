import uuid

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from school_api.db.session import Base, utcnow


class User(Base):
    """Any person who can sign in: super admin, school admin, teacher or student."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Owning school (tenant); null for SUPER_ADMIN and for admins not yet attached to a school
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="SET NULL"), nullable=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    # Globally unique across schools
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    # SUPER_ADMIN, SCHOOL_ADMIN, TEACHER, STUDENT
    role = Column(String(20), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    phone_number = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    gender = Column(String(10), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # Staff fields
    employee_id = Column(String(50), nullable=True)
    qualification = Column(String(255), nullable=True)
    experience = Column(Integer, nullable=True)
    joining_date = Column(Date, nullable=True)

    # Student fields; a student belongs to exactly one class
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True, index=True)
    student_number = Column(String(50), nullable=True)
    roll_number = Column(String(50), nullable=True)
    admission_number = Column(String(50), nullable=True)
    admission_date = Column(Date, nullable=True)
    parent_details = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    # Read side only; assignment rows are written and cleared by the user-management service
    class_assignments = relationship(
        "TeacherClassAssignment",
        lazy="selectin",
        viewonly=True,
        order_by="TeacherClassAssignment.created_at",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def assigned_classes(self) -> list:
        return [a.class_id for a in self.class_assignments]


class RefreshToken(Base):
    """Stored refresh tokens for users."""

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(512), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="refresh_tokens")
