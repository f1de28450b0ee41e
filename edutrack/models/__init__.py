"""
EduTrack SQLAlchemy Models Package.
"""

# Import base classes
from .base import Base, JSONDocument

# Import domain models
from .student import Student, RISK_LEVELS
from .attendance import AttendanceRecord, ATTENDANCE_STATUSES, WHOLE_DAY_SUBJECT
from .teacher import Teacher
from .assignment import Assignment, AssignmentSubmission, ASSIGNMENT_STATUSES, SUBMISSION_STATUSES

# Export metadata for Alembic migrations
metadata = Base.metadata

__all__ = [
    # Base classes
    "Base",
    "JSONDocument",
    "metadata",

    # Domain models
    "Student",
    "AttendanceRecord",
    "Teacher",
    "Assignment",
    "AssignmentSubmission",
    "RISK_LEVELS",
    "ATTENDANCE_STATUSES",
    "WHOLE_DAY_SUBJECT",
    "ASSIGNMENT_STATUSES",
    "SUBMISSION_STATUSES",
]
