"""initial schema: students, teachers, attendance records

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
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
        "students",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("roll_no", sa.String(30), nullable=False),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("program", sa.String(50), nullable=False),
        sa.Column("batch", sa.String(20), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("section", sa.String(10), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("total_classes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attended_classes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("present_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("late_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("absent_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attendance_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("academics", JSONDocument, nullable=False),
        sa.Column("warnings", JSONDocument, nullable=False),
        sa.Column("mentor", JSONDocument, nullable=True),
        sa.Column("cgpa", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_credits", sa.Float(), nullable=False, server_default="0"),
        sa.Column("earned_credits", sa.Float(), nullable=False, server_default="0"),
        sa.Column("current_backlogs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_backlogs_ever", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("risk_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("risk_level", sa.String(10), nullable=False, server_default="Low"),
        sa.Column("is_at_risk", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("risk_overridden", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("fee_pending", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint(
            "risk_level IN ('Low', 'Medium', 'High', 'Critical')",
            name="check_valid_risk_level"
        ),
        sa.CheckConstraint("attended_classes <= total_classes", name="check_attended_within_total"),
    )
    op.create_index("ix_students_email", "students", ["email"], unique=True)
    op.create_index("ix_students_roll_no", "students", ["roll_no"], unique=True)
    op.create_index("ix_students_is_at_risk", "students", ["is_at_risk"])
    op.create_index("idx_student_class", "students", ["semester", "section", "batch"])
    op.create_index("idx_student_risk", "students", ["is_at_risk", "risk_score"])

    op.create_table(
        "teachers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("employee_id", sa.String(30), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("role", sa.String(10), nullable=False, server_default="Teacher"),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("subjects", JSONDocument, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("role IN ('Teacher', 'HOD')", name="check_valid_teacher_role"),
    )
    op.create_index("ix_teachers_employee_id", "teachers", ["employee_id"], unique=True)
    op.create_index("ix_teachers_department", "teachers", ["department"])

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "student_id",
            sa.Integer(),
            sa.ForeignKey("students.id", ondelete="CASCADE"),
            nullable=False
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("subject_code", sa.String(20), nullable=True),
        sa.Column("subject_name", sa.String(200), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('present', 'absent', 'late')",
            name="check_valid_attendance_status"
        ),
    )
    op.create_index("ix_attendance_records_student_id", "attendance_records", ["student_id"])
    op.create_index("ix_attendance_records_date", "attendance_records", ["date"])
    op.create_index("idx_attendance_teacher_date", "attendance_records", ["created_by", "date"])
    op.create_index("idx_attendance_student_date", "attendance_records", ["student_id", "date"])
    op.create_index(
        "uq_attendance_student_date_subject",
        "attendance_records",
        ["student_id", "date", "subject_code"],
        unique=True,
        postgresql_where=sa.text("subject_code IS NOT NULL"),
        sqlite_where=sa.text("subject_code IS NOT NULL"),
    )


def downgrade() -> None:
    op.drop_table("attendance_records")
    op.drop_table("teachers")
    op.drop_table("students")
