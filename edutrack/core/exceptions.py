"""
Error taxonomy for EduTrack.

Services raise these instead of generic exceptions so callers can map every
failure to a stable error kind:

    from edutrack.core.exceptions import StudentNotFoundError, error_response

    try:
        await upsert_semester(db, principal, "21CS001", 3, subjects)
    except EduTrackError as e:
        return error_response(e)
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError


class EduTrackError(Exception):
    """Base exception for all EduTrack errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(EduTrackError):
    """Input validation failed"""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", details=details)

    @classmethod
    def from_pydantic(cls, error: PydanticValidationError) -> "ValidationError":
        """Collapse a pydantic error into a single validation error for the first failing field."""
        errors = error.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        message = first.get("msg", "Invalid input")
        if field:
            message = f"{field}: {message}"
        return cls(
            message,
            field=field,
            details={"errors": [
                {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")}
                for e in errors
            ]}
        )


# ============================================
# Resource Errors (404-type)
# ============================================

class NotFoundError(EduTrackError):
    """Base class for not found errors"""

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": str(resource_id)}
        )


class StudentNotFoundError(NotFoundError):
    """Student not found"""

    def __init__(self, student_ref: Any):
        super().__init__("Student", student_ref)


class TeacherNotFoundError(NotFoundError):
    """Teacher not found"""

    def __init__(self, teacher_ref: Any):
        super().__init__("Teacher", teacher_ref)


class AssignmentNotFoundError(NotFoundError):
    """Assignment not found"""

    def __init__(self, assignment_id: Any):
        super().__init__("Assignment", assignment_id)


class SubmissionNotFoundError(NotFoundError):
    """Assignment submission not found"""

    def __init__(self, submission_id: Any):
        super().__init__("Submission", submission_id)


# ============================================
# Authorization Errors (403-type)
# ============================================

class AuthorizationError(EduTrackError):
    """Caller not authorized for this action"""

    def __init__(self, message: str = "Not authorized", action: Optional[str] = None):
        super().__init__(message, code="NOT_AUTHORIZED")
        if action:
            self.details["action"] = action


# ============================================
# Conflict Errors (409-type)
# ============================================

class ConflictError(EduTrackError):
    """Write rejected because it would break a uniqueness or atomicity rule"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFLICT", details=details)


# ============================================
# Storage Errors
# ============================================

class TransientStoreError(EduTrackError):
    """Underlying storage is unavailable"""

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(message, code="STORE_UNAVAILABLE")


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Map SQLAlchemy failures raised inside the block onto the error taxonomy."""
    try:
        yield
    except IntegrityError as e:
        raise ConflictError(
            f"{operation} violates a uniqueness constraint",
            details={"operation": operation}
        ) from e
    except (OperationalError, InterfaceError) as e:
        raise TransientStoreError(f"Storage unavailable during {operation}") from e


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: Exception) -> Dict[str, Any]:
    """Convert exception to a structured error result without internal details"""
    if not isinstance(error, EduTrackError):
        error = EduTrackError("An unexpected error occurred")
    return {
        "success": False,
        "error": error.to_dict()
    }
