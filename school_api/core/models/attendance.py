import uuid

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid

from school_api.db.session import Base, utcnow


class Attendance(Base):
    """One student's attendance in one class on one date."""

    __tablename__ = "attendance"
    __table_args__ = (
        # A student is marked at most once per class per day
        UniqueConstraint("student_id", "class_id", "date", name="uq_attendance_student_class_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    # Copied from the class at insert time
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    marked_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    date = Column(Date, nullable=False, index=True)
    # present, absent, late, excused
    status = Column(String(20), nullable=False)
    remarks = Column(Text, nullable=True)
    time_in = Column(DateTime(timezone=True), nullable=True)
    time_out = Column(DateTime(timezone=True), nullable=True)
    # {"period": 1, "subject": "...", "start_time": "...", "end_time": "..."}
    period_details = Column(JSON, nullable=True)
    is_half_day = Column(Boolean, nullable=False, default=False)
    is_notified = Column(Boolean, nullable=False, default=False)
    parent_notification_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
