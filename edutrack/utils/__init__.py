"""
Utility modules for EduTrack.

This package contains the storage adapters that the services use to
read and write students, teachers, attendance records and assignments.
"""

from .repository import (
    AssignmentStore,
    AttendanceStore,
    CounterIncrement,
    StudentRepository,
    TeacherRepository,
)

__all__ = [
    "AssignmentStore",
    "AttendanceStore",
    "CounterIncrement",
    "StudentRepository",
    "TeacherRepository",
]
