"""
Assignment and submission models for EduTrack.

An assignment targets one class (department, semester, section, batch).
Each student holds at most one submission per assignment; resubmitting
updates that row. Only metadata is stored here, never the files.
"""

import datetime
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONDocument


ASSIGNMENT_STATUSES = ("active", "closed", "draft")
SUBMISSION_STATUSES = ("submitted", "late", "graded")


class Assignment(Base):
    """Coursework set by a teacher for one of their classes."""

    __tablename__ = "assignments"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    instructions: Mapped[str] = mapped_column(Text, nullable=False, default="")

    subject_code: Mapped[str] = mapped_column(String(20), nullable=False)
    subject_name: Mapped[str] = mapped_column(String(200), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False)
    semester: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[str] = mapped_column(String(10), nullable=False)
    batch: Mapped[str] = mapped_column(String(20), nullable=False)

    created_by: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Identifier of the teacher who set the assignment"
    )

    due_date: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_marks: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    tags: Mapped[List[str]] = mapped_column(JSONDocument, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="active")

    # Class size when the assignment was created
    total_students: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Submission statistics, maintained by the assignment service
    submissions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    graded_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_marks: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    highest_marks: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lowest_marks: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("idx_assignment_class", "department", "semester", "section", "batch"),
        Index("idx_assignment_creator", "created_by", "status"),
        CheckConstraint("status IN ('active', 'closed', 'draft')", name="check_valid_assignment_status"),
        CheckConstraint("total_marks > 0", name="check_positive_total_marks"),
    )

    def __repr__(self) -> str:
        return f"<Assignment(id={self.id}, subject={self.subject_code}, due={self.due_date})>"


class AssignmentSubmission(Base):
    """A student's (latest) submission for an assignment."""

    __tablename__ = "assignment_submissions"

    assignment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    student_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    submitted_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="submitted")
    student_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    resubmission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    total_marks: Mapped[float] = mapped_column(Float, nullable=False)
    marks_obtained: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    feedback: Mapped[str] = mapped_column(Text, nullable=False, default="")
    grade: Mapped[str] = mapped_column(String(5), nullable=False, default="")
    graded_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    graded_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("assignment_id", "student_id", name="uq_submission_assignment_student"),
        CheckConstraint("status IN ('submitted', 'late', 'graded')", name="check_valid_submission_status"),
    )

    def __repr__(self) -> str:
        return f"<AssignmentSubmission(assignment_id={self.assignment_id}, student_id={self.student_id}, status='{self.status}')>"
