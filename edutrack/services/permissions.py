"""
Permission predicates for EduTrack.

Every operation is checked once, before any mutation, against the caller's
role and the classes they teach.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from loguru import logger

from edutrack.core.exceptions import AuthorizationError
from edutrack.models import Student, Teacher


class Role(str, Enum):
    STUDENT = "Student"
    TEACHER = "Teacher"
    HOD = "HOD"
    ADMIN = "Admin"


class Action(str, Enum):
    UPLOAD_GRADES = "upload_grades"
    MARK_ATTENDANCE = "mark_attendance"
    ADJUST_ATTENDANCE = "adjust_attendance"
    ADD_WARNING = "add_warning"
    OVERRIDE_RISK = "override_risk"
    ASSIGN_MENTOR = "assign_mentor"
    REFRESH_STANDING = "refresh_standing"
    VIEW_RECORD = "view_record"
    LIST_AT_RISK = "list_at_risk"
    VIEW_ROSTER = "view_roster"
    VIEW_DIRECTORY = "view_directory"
    VIEW_CLASS = "view_class"
    VIEW_DASHBOARD = "view_dashboard"
    CREATE_ASSIGNMENT = "create_assignment"
    REVIEW_SUBMISSIONS = "review_submissions"
    GRADE_SUBMISSION = "grade_submission"
    VIEW_ASSIGNMENTS = "view_assignments"
    SUBMIT_ASSIGNMENT = "submit_assignment"


# Roles allowed to attempt each action
ROLE_ACTIONS: Dict[Action, FrozenSet[Role]] = {
    Action.UPLOAD_GRADES: frozenset({Role.TEACHER, Role.HOD}),
    Action.MARK_ATTENDANCE: frozenset({Role.TEACHER, Role.HOD}),
    Action.ADJUST_ATTENDANCE: frozenset({Role.TEACHER}),
    Action.ADD_WARNING: frozenset({Role.TEACHER}),
    Action.OVERRIDE_RISK: frozenset({Role.TEACHER}),
    Action.ASSIGN_MENTOR: frozenset({Role.TEACHER}),
    Action.REFRESH_STANDING: frozenset({Role.TEACHER, Role.HOD, Role.ADMIN}),
    Action.VIEW_RECORD: frozenset({Role.STUDENT, Role.TEACHER, Role.HOD, Role.ADMIN}),
    Action.LIST_AT_RISK: frozenset({Role.TEACHER, Role.HOD, Role.ADMIN}),
    Action.VIEW_ROSTER: frozenset({Role.TEACHER, Role.HOD}),
    Action.VIEW_DIRECTORY: frozenset({Role.TEACHER, Role.HOD, Role.ADMIN}),
    Action.VIEW_CLASS: frozenset({Role.TEACHER, Role.HOD, Role.ADMIN}),
    Action.VIEW_DASHBOARD: frozenset({Role.TEACHER, Role.HOD}),
    Action.CREATE_ASSIGNMENT: frozenset({Role.TEACHER}),
    Action.REVIEW_SUBMISSIONS: frozenset({Role.TEACHER}),
    Action.GRADE_SUBMISSION: frozenset({Role.TEACHER}),
    Action.VIEW_ASSIGNMENTS: frozenset({Role.STUDENT}),
    Action.SUBMIT_ASSIGNMENT: frozenset({Role.STUDENT}),
}

# Roles that may act on any student regardless of the classes they teach
UNRESTRICTED_ROLES = frozenset({Role.HOD, Role.ADMIN})


@dataclass(frozen=True)
class TaughtClass:
    subject_code: str
    semester: int
    section: str
    batch: str

    def covers(self, student: Student) -> bool:
        return (
            self.semester == student.semester
            and self.section.upper() == (student.section or "").upper()
            and self.batch == student.batch
        )


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as supplied by the identity layer."""
    user_id: str
    role: Role
    taught_classes: Tuple[TaughtClass, ...] = field(default_factory=tuple)
    department: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_teacher(cls, teacher: Teacher) -> "Principal":
        """
        Build a principal from a stored teacher and the classes they teach.

        Raises:
            AuthorizationError: If the teacher account is deactivated
        """
        # Unflushed rows have no is_active value yet
        if teacher.is_active is False:
            logger.warning(f"Deactivated teacher {teacher.employee_id} refused")
            raise AuthorizationError(f"Teacher {teacher.employee_id} is not active")
        return cls(
            user_id=str(teacher.id),
            role=Role(teacher.role),
            taught_classes=tuple(
                TaughtClass(
                    subject_code=subject["subject_code"],
                    semester=int(subject["semester"]),
                    section=str(subject["section"]).upper(),
                    batch=str(subject["batch"]),
                )
                for subject in teacher.subjects or []
            ),
            department=teacher.department,
            name=teacher.name,
        )

    @classmethod
    def for_student(cls, student: Student) -> "Principal":
        return cls(user_id=str(student.id), role=Role.STUDENT, name=student.name)


def teaches_student(principal: Principal, student: Student) -> bool:
    """True when one of the principal's taught classes contains the student."""
    if principal.department and student.department != principal.department:
        return False
    return any(taught.covers(student) for taught in principal.taught_classes)


def teaches_class(
    principal: Principal,
    subject_code: str,
    semester: int,
    section: str,
    batch: str,
    department: Optional[str] = None
) -> bool:
    """True when the principal teaches exactly this subject to this class."""
    if department and principal.department and department != principal.department:
        return False
    return any(
        taught.subject_code.upper() == subject_code.upper()
        and taught.semester == semester
        and taught.section.upper() == section.upper()
        and taught.batch == batch
        for taught in principal.taught_classes
    )


def can_access_student(principal: Principal, student: Student) -> bool:
    """Whether the principal may act on this particular student."""
    if principal.role in UNRESTRICTED_ROLES:
        return True
    if principal.role == Role.STUDENT:
        return principal.user_id == str(student.id)
    return teaches_student(principal, student)


def authorize(principal: Principal, action: Action, students: Iterable[Student] = ()) -> None:
    """
    Raise AuthorizationError unless the principal may perform the action.

    Args:
        principal: Authenticated caller
        action: Operation being attempted
        students: Students the operation touches (checked one by one)
    """
    allowed_roles = ROLE_ACTIONS[action]
    if principal.role not in allowed_roles:
        logger.warning(f"{principal.role.value} {principal.user_id} denied {action.value}: role not permitted")
        raise AuthorizationError(
            f"Role {principal.role.value} may not perform {action.value}",
            action=action.value
        )

    for student in students:
        if not can_access_student(principal, student):
            logger.warning(f"{principal.role.value} {principal.user_id} denied {action.value} on student {student.id}")
            raise AuthorizationError(
                f"Access denied for student {student.roll_no}. You do not teach this student.",
                action=action.value
            )
