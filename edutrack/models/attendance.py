"""
Attendance audit records for EduTrack.

One row per marked attendance entry. Rows are only ever inserted; the
student counters are the fast summary and these rows are the history.
"""

import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint, Date, ForeignKey, Index, Integer, String, text
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


ATTENDANCE_STATUSES = ("present", "absent", "late")

# Subject shown for whole-day marks, which carry no subject code
WHOLE_DAY_SUBJECT = "General"


class AttendanceRecord(Base):
    """Single attendance mark for a student on a calendar date."""

    __tablename__ = "attendance_records"

    student_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="Calendar date of the class (time of day discarded)"
    )

    status: Mapped[str] = mapped_column(String(10), nullable=False)

    subject_code: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Upper-cased subject code; NULL for whole-day marking"
    )

    subject_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Identifier of the teacher who marked the entry"
    )

    __table_args__ = (
        # Per-subject marking: one record per student, date and subject.
        # Whole-day marks (no subject) are unconstrained.
        Index(
            "uq_attendance_student_date_subject",
            "student_id", "date", "subject_code",
            unique=True,
            postgresql_where=text("subject_code IS NOT NULL"),
            sqlite_where=text("subject_code IS NOT NULL"),
        ),
        Index("idx_attendance_teacher_date", "created_by", "date"),
        Index("idx_attendance_student_date", "student_id", "date"),
        CheckConstraint(
            "status IN ('present', 'absent', 'late')",
            name="check_valid_attendance_status"
        ),
    )

    def __repr__(self) -> str:
        return f"<AttendanceRecord(student_id={self.student_id}, date={self.date}, status='{self.status}', subject={self.subject_code})>"
