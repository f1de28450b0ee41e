"""
Core infrastructure layer for EduTrack.

This package contains infrastructure components: database connections
and the error taxonomy shared by every service.
"""

from .database import (
    get_db,
    init_db,
    close_db,
    health_check,
    create_session_factory,
)
from .exceptions import (
    EduTrackError,
    ValidationError,
    NotFoundError,
    StudentNotFoundError,
    TeacherNotFoundError,
    AssignmentNotFoundError,
    SubmissionNotFoundError,
    AuthorizationError,
    ConflictError,
    TransientStoreError,
    error_response,
)

__all__ = [
    "get_db",
    "init_db",
    "close_db",
    "health_check",
    "create_session_factory",
    "EduTrackError",
    "ValidationError",
    "NotFoundError",
    "StudentNotFoundError",
    "TeacherNotFoundError",
    "AssignmentNotFoundError",
    "SubmissionNotFoundError",
    "AuthorizationError",
    "ConflictError",
    "TransientStoreError",
    "error_response",
]
