"""
Student aggregate for EduTrack.

The student row carries its identity, the attendance counters, the
embedded academic history (one document per semester), warnings, the
assigned mentor and the derived dashboard fields written by the standing
recomputation.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy import (
    Boolean, CheckConstraint, Float, Index, Integer, String
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONDocument


RISK_LEVELS = ("Low", "Medium", "High", "Critical")


class Student(Base):
    """
    Student aggregate root.

    Embedded documents (``academics``, ``warnings``, ``mentor``) have no
    identity of their own. They are replaced wholesale on write so that
    SQLAlchemy change detection sees the new value.
    """

    __tablename__ = "students"

    # Identity
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Lower-cased login email"
    )

    roll_no: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="University roll number"
    )

    department: Mapped[str] = mapped_column(String(100), nullable=False)
    program: Mapped[str] = mapped_column(String(50), nullable=False)
    batch: Mapped[str] = mapped_column(String(20), nullable=False, comment="e.g. 2023-2027")
    semester: Mapped[int] = mapped_column(Integer, nullable=False, comment="Current semester")
    section: Mapped[str] = mapped_column(String(10), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Attendance counters
    total_classes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attended_classes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    present_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    late_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    absent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attendance_percentage: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        comment="attended_classes / total_classes * 100, 0 when no classes"
    )

    # Embedded documents
    academics: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONDocument,
        nullable=False,
        default=list,
        comment="Semester records, at most one per semester number"
    )

    warnings: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONDocument,
        nullable=False,
        default=list,
        comment="Append-only list of {reason, given_by, date}"
    )

    mentor: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Assigned mentor {name, phone}"
    )

    # Derived dashboard fields
    cgpa: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_credits: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    earned_credits: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_backlogs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_backlogs_ever: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False, default="Low")
    is_at_risk: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    risk_overridden: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Risk fields were set manually and survive recomputation until new grades or attendance"
    )

    fee_pending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_student_class", "semester", "section", "batch"),
        Index("idx_student_risk", "is_at_risk", "risk_score"),
        CheckConstraint(
            "risk_level IN ('Low', 'Medium', 'High', 'Critical')",
            name="check_valid_risk_level"
        ),
        CheckConstraint(
            "attended_classes <= total_classes",
            name="check_attended_within_total"
        ),
    )

    def __repr__(self) -> str:
        return f"<Student(roll_no={self.roll_no}, semester={self.semester}, section={self.section})>"

    def semester_record(self, semester: int) -> Optional[Dict[str, Any]]:
        """Return the embedded record for a semester number, if any."""
        for record in self.academics or []:
            if record.get("semester") == semester:
                return record
        return None

    @property
    def latest_semester_record(self) -> Optional[Dict[str, Any]]:
        if not self.academics:
            return None
        return max(self.academics, key=lambda record: record.get("semester", 0))
