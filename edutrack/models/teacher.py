"""
Teacher model for EduTrack.

Teachers are only read by the standing engine: the classes they teach
decide which students they may grade, mark and flag.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy import Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base, JSONDocument


class Teacher(Base):
    """
    Teaching staff member.

    ``subjects`` holds the taught classes as
    ``{subject_code, subject_name, semester, section, batch}`` documents.
    """

    __tablename__ = "teachers"

    employee_id: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="Upper-cased employee identifier"
    )

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    role: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="Teacher",
        comment="Teacher or HOD"
    )

    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    subjects: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSONDocument,
        nullable=False,
        default=list
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("role IN ('Teacher', 'HOD')", name="check_valid_teacher_role"),
    )

    @validates("employee_id")
    def normalize_employee_id(self, key: str, value: str) -> str:
        return value.strip().upper() if value else value

    @validates("email")
    def normalize_email(self, key: str, value: str) -> str:
        return value.strip().lower() if value else value

    def __repr__(self) -> str:
        return f"<Teacher(employee_id={self.employee_id}, role={self.role}, department={self.department})>"
