"""Schools are the tenant root: every class, record and non-super-admin user belongs to one."""
import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, Uuid

from school_api.db.session import Base, utcnow


class School(Base):
    __tablename__ = "schools"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)
    zip_code = Column(String(20), nullable=False)
    phone = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    website = Column(String(255), nullable=True)
    # Managing SCHOOL_ADMIN; users.school_id points back here
    admin_id = Column(Uuid, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # SMS quota counter
    sms_monthly_limit = Column(Integer, nullable=False, default=1000)
    sms_used = Column(Integer, nullable=False, default=0)
    sms_reset_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Settings
    academic_year = Column(String(20), nullable=True)
    term_system = Column(String(20), nullable=False, default="semester")
    grade_system = Column(String(20), nullable=False, default="percentage")
    attendance_threshold = Column(Integer, nullable=False, default=75)
    allowed_domains = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
