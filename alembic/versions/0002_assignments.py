"""assignments and submissions

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONDocument = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "assignments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=False),
        sa.Column("subject_code", sa.String(20), nullable=False),
        sa.Column("subject_name", sa.String(200), nullable=False),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("section", sa.String(10), nullable=False),
        sa.Column("batch", sa.String(20), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_marks", sa.Float(), nullable=False),
        sa.Column("tags", JSONDocument, nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("total_students", sa.Integer(), nullable=False),
        sa.Column("submissions_count", sa.Integer(), nullable=False),
        sa.Column("graded_count", sa.Integer(), nullable=False),
        sa.Column("average_marks", sa.Float(), nullable=False),
        sa.Column("highest_marks", sa.Float(), nullable=True),
        sa.Column("lowest_marks", sa.Float(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active', 'closed', 'draft')", name="check_valid_assignment_status"),
        sa.CheckConstraint("total_marks > 0", name="check_positive_total_marks"),
    )
    op.create_index("idx_assignment_class", "assignments", ["department", "semester", "section", "batch"])
    op.create_index("idx_assignment_creator", "assignments", ["created_by", "status"])

    op.create_table(
        "assignment_submissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "assignment_id",
            sa.Integer(),
            sa.ForeignKey("assignments.id", ondelete="CASCADE"),
            nullable=False
        ),
        sa.Column(
            "student_id",
            sa.Integer(),
            sa.ForeignKey("students.id", ondelete="CASCADE"),
            nullable=False
        ),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("student_notes", sa.Text(), nullable=False),
        sa.Column("resubmission_count", sa.Integer(), nullable=False),
        sa.Column("total_marks", sa.Float(), nullable=False),
        sa.Column("marks_obtained", sa.Float(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=False),
        sa.Column("grade", sa.String(5), nullable=False),
        sa.Column("graded_by", sa.String(64), nullable=True),
        sa.Column("graded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("assignment_id", "student_id", name="uq_submission_assignment_student"),
        sa.CheckConstraint("status IN ('submitted', 'late', 'graded')", name="check_valid_submission_status"),
    )
    op.create_index("ix_assignment_submissions_assignment_id", "assignment_submissions", ["assignment_id"])
    op.create_index("ix_assignment_submissions_student_id", "assignment_submissions", ["student_id"])


def downgrade() -> None:
    op.drop_table("assignment_submissions")
    op.drop_table("assignments")
