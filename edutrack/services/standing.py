"""
Standing recomputation and student-level actions.

``recompute_standing`` is the single place where derived academic and risk
fields are written. Every mutating service calls it on the row it has just
locked, inside its own transaction, before committing.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from edutrack.config import settings
from edutrack.core.exceptions import (
    AuthorizationError,
    StudentNotFoundError,
    TeacherNotFoundError,
    ValidationError,
)
from edutrack.models import RISK_LEVELS, WHOLE_DAY_SUBJECT, Student
from edutrack.schemas import (
    FAILING_GRADES,
    ClassQuery,
    DirectoryQuery,
    MentorInput,
    WarningInput,
    parse_input,
)
from edutrack.services.aggregator import recompute_cgpa
from edutrack.services.notifications import NotificationSender, get_notification_sender
from edutrack.services.permissions import Action, Principal, Role, authorize
from edutrack.services.risk import RiskAssessment, classify, manual_risk_level
from edutrack.utils.repository import AttendanceStore, StudentRepository, TeacherRepository


def attendance_percentage(attended_classes: int, total_classes: int) -> float:
    """Attended share of classes as a percentage, 0 when nothing was held."""
    if not total_classes or total_classes <= 0:
        return 0.0
    return min(max(attended_classes * 100.0 / total_classes, 0.0), 100.0)


def recompute_standing(
    student: Student,
    clear_override: bool = False,
    thresholds: Optional[Dict[str, float]] = None,
) -> RiskAssessment:
    """
    Re-derive CGPA, backlogs, attendance percentage and risk for a student.

    Runs the academic aggregation and then the risk classification on the
    in-memory row. Calling it twice without a data change produces the
    same values.

    Args:
        student: Freshly loaded student row
        clear_override: Drop a manual risk override (new grades or attendance)
        thresholds: Risk tier boundaries (configured thresholds by default)

    Returns:
        The computed RiskAssessment (even when an override keeps the stored level)
    """
    summary = recompute_cgpa(student.academics or [], student.total_backlogs_ever or 0)

    student.cgpa = summary.cgpa
    student.total_credits = summary.total_credits
    student.earned_credits = summary.earned_credits
    student.current_backlogs = summary.current_backlogs
    student.total_backlogs_ever = summary.total_backlogs_ever

    total_classes = student.total_classes or 0
    student.attendance_percentage = attendance_percentage(student.attended_classes or 0, total_classes)

    assessment = classify(
        summary.cgpa if summary.has_graded_credits else None,
        summary.current_backlogs,
        student.attendance_percentage if total_classes > 0 else None,
        thresholds=thresholds or settings.risk_thresholds,
        attendance_threshold=settings.attendance_threshold,
    )

    student.risk_score = assessment.risk_score
    if clear_override or not student.risk_overridden:
        student.risk_level = assessment.risk_level
        student.is_at_risk = assessment.is_at_risk
        student.risk_overridden = False

    return assessment


def student_summary(student: Student) -> Dict[str, Any]:
    """Dashboard view of a student used by roster and risk listings."""
    latest = student.latest_semester_record
    subjects = latest.get("subjects", []) if latest else []
    return {
        "id": student.id,
        "name": student.name,
        "roll_no": student.roll_no,
        "email": student.email,
        "cgpa": student.cgpa,
        "sgpa": latest.get("sgpa") if latest else None,
        "attendance_percentage": student.attendance_percentage,
        "risk_score": student.risk_score,
        "risk_level": student.risk_level,
        "is_at_risk": student.is_at_risk,
        "current_backlogs": student.current_backlogs,
        "fee_pending": student.fee_pending,
        "warnings": len(student.warnings or []),
        "total_subjects": len(subjects),
        "failed_subjects": sum(1 for s in subjects if s.get("grade") in FAILING_GRADES),
    }


class StandingService:
    """
    Student-level actions that feed or read the academic standing.

    Warnings, manual risk overrides, mentor assignment and the read-side
    views (directory, class lists, rosters, teacher dashboard) live here.
    """

    def __init__(
        self,
        repository: Optional[StudentRepository] = None,
        notifier: Optional[NotificationSender] = None,
        teachers: Optional[TeacherRepository] = None,
        store: Optional[AttendanceStore] = None
    ):
        self.repository = repository or StudentRepository()
        self.notifier = notifier or get_notification_sender()
        self.teachers = teachers or TeacherRepository()
        self.store = store or AttendanceStore()

    async def refresh_standing(self, db: AsyncSession, principal: Principal, student_id: int) -> RiskAssessment:
        """
        Re-run the standing recomputation for one student and persist it.

        Safe to retry: with no intervening change the stored values are identical.
        """
        authorize(principal, Action.REFRESH_STANDING)
        try:
            student = await self.repository.get(db, student_id, for_update=True)
            authorize(principal, Action.REFRESH_STANDING, [student])

            assessment = recompute_standing(student)
            await self.repository.save(db, student)
            await db.commit()

            logger.debug(f"Refreshed standing for {student.roll_no}: {student.risk_level} ({student.risk_score})")
            return assessment

        except Exception:
            await db.rollback()
            raise

    async def add_warning(self, db: AsyncSession, principal: Principal, student_id: int, reason: str) -> Student:
        """
        Append a warning to a student and notify the configured channel.

        The notification is sent after the commit and its failure is ignored.
        """
        data = parse_input(WarningInput, {"reason": reason})
        authorize(principal, Action.ADD_WARNING)

        try:
            student = await self.repository.get(db, student_id, for_update=True)
            authorize(principal, Action.ADD_WARNING, [student])

            student.warnings = list(student.warnings or []) + [{
                "reason": data.reason,
                "given_by": principal.user_id,
                "given_by_name": principal.name,
                "date": datetime.now(timezone.utc).isoformat(),
            }]
            recompute_standing(student)
            await self.repository.save(db, student)
            await db.commit()

        except Exception:
            await db.rollback()
            raise

        logger.info(f"Warning added to {student.roll_no} by {principal.user_id}")
        await self.notifier.send(
            None,
            f"Warning issued to {student.name} ({student.roll_no}): {data.reason}"
        )
        return student

    async def override_risk(
        self,
        db: AsyncSession,
        principal: Principal,
        student_id: int,
        is_at_risk: bool,
        risk_level: Optional[str] = None
    ) -> Student:
        """
        Manually set a student's risk flag and level.

        The override holds until the next grade upload or attendance event
        reclassifies the student.
        """
        if not isinstance(is_at_risk, bool):
            raise ValidationError("is_at_risk must be a boolean", field="is_at_risk")
        if risk_level is not None and risk_level not in RISK_LEVELS:
            raise ValidationError(
                f"risk_level must be one of: {', '.join(RISK_LEVELS)}",
                field="risk_level"
            )
        authorize(principal, Action.OVERRIDE_RISK)

        try:
            student = await self.repository.get(db, student_id, for_update=True)
            authorize(principal, Action.OVERRIDE_RISK, [student])

            student.is_at_risk = is_at_risk
            student.risk_level = manual_risk_level(is_at_risk, risk_level)
            student.risk_overridden = True
            recompute_standing(student)
            await self.repository.save(db, student)
            await db.commit()

            logger.info(f"Risk for {student.roll_no} overridden to {student.risk_level} by {principal.user_id}")
            return student

        except Exception:
            await db.rollback()
            raise

    async def assign_mentor(self, db: AsyncSession, principal: Principal, student_id: int, name: str, phone: str) -> Student:
        """Assign (or reassign) the student's mentor."""
        data = parse_input(MentorInput, {"name": name, "phone": phone})
        authorize(principal, Action.ASSIGN_MENTOR)

        try:
            student = await self.repository.get(db, student_id, for_update=True)
            authorize(principal, Action.ASSIGN_MENTOR, [student])

            student.mentor = {"name": data.name, "phone": data.phone}
            await self.repository.save(db, student)
            await db.commit()

            logger.info(f"Mentor {data.name} assigned to {student.roll_no}")
            return student

        except Exception:
            await db.rollback()
            raise

    async def get_mentor(self, db: AsyncSession, principal: Principal) -> Dict[str, Optional[str]]:
        """The logged-in student's mentor."""
        if principal.role != Role.STUDENT:
            raise AuthorizationError("Only students can view their own mentor", action="view_mentor")
        student = await self.repository.find_by_id(db, int(principal.user_id))
        if student is None:
            raise StudentNotFoundError(principal.user_id)
        return student.mentor or {"name": None, "phone": None}

    async def get_academic_record(self, db: AsyncSession, principal: Principal, student_id: int) -> Dict[str, Any]:
        """Academic history and dashboard fields of one student."""
        authorize(principal, Action.VIEW_RECORD)
        student = await self.repository.get(db, student_id)
        authorize(principal, Action.VIEW_RECORD, [student])

        return {
            "id": student.id,
            "name": student.name,
            "roll_no": student.roll_no,
            "department": student.department,
            "semester": student.semester,
            "section": student.section,
            "batch": student.batch,
            "cgpa": student.cgpa,
            "total_credits": student.total_credits,
            "earned_credits": student.earned_credits,
            "academics": sorted(student.academics or [], key=lambda record: record["semester"]),
            "attendance_percentage": student.attendance_percentage,
            "current_backlogs": student.current_backlogs,
            "total_backlogs_ever": student.total_backlogs_ever,
            "risk_score": student.risk_score,
            "risk_level": student.risk_level,
            "is_at_risk": student.is_at_risk,
            "warnings": list(student.warnings or []),
            "mentor": student.mentor,
            "fee_pending": student.fee_pending,
        }

    async def list_at_risk(self, db: AsyncSession, principal: Principal) -> List[Dict[str, Any]]:
        """All at-risk students, highest risk score first."""
        authorize(principal, Action.LIST_AT_RISK)
        students = await self.repository.list_at_risk(db)
        return [student_summary(student) for student in students]

    async def teacher_roster(self, db: AsyncSession, principal: Principal) -> List[Dict[str, Any]]:
        """Students in the classes the principal teaches, ordered by roll number."""
        authorize(principal, Action.VIEW_ROSTER)
        classes = [(c.semester, c.section, c.batch) for c in principal.taught_classes]
        students = await self.repository.list_in_classes(db, classes)
        if principal.department:
            students = [s for s in students if s.department == principal.department]
        return [student_summary(student) for student in students]

    async def student_directory(
        self,
        db: AsyncSession,
        principal: Principal,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Dict[str, Any]:
        """
        Searchable, paginated list of every student, ordered by roll number.

        Args:
            db: Database session
            principal: Caller (Teacher, HOD or Admin)
            search: Case-insensitive text matched against name, roll number, email and batch
            page: 1-based page number
            limit: Students per page

        Returns:
            Students on the page, pagination counters and a description of the filter
        """
        query = parse_input(DirectoryQuery, {"search": search, "page": page, "limit": limit})
        authorize(principal, Action.VIEW_DIRECTORY)

        students, total = await self.repository.search(db, query.search, query.page, query.limit)
        return {
            "students": [
                {
                    "id": student.id,
                    "name": student.name,
                    "roll_no": student.roll_no,
                    "email": student.email,
                    "department": student.department,
                    "semester": student.semester,
                    "section": student.section,
                    "batch": student.batch,
                    "attendance_percentage": student.attendance_percentage,
                    "cgpa": student.cgpa,
                    "risk_score": student.risk_score,
                    "risk_level": student.risk_level,
                }
                for student in students
            ],
            "pagination": {
                "page": query.page,
                "pages": math.ceil(total / query.limit),
                "total": total,
                "limit": query.limit,
            },
            "filters": f'Search: "{query.search}"' if query.search else "All Students",
        }

    async def class_list(
        self,
        db: AsyncSession,
        principal: Principal,
        semester: Any,
        section: Optional[str],
        department: Optional[str]
    ) -> Dict[str, Any]:
        """Students of one department, semester and section, for marking sheets."""
        query = parse_input(ClassQuery, {"semester": semester, "section": section, "department": department})
        authorize(principal, Action.VIEW_CLASS)

        students = await self.repository.list_class(db, query.department, query.semester, query.section)
        return {
            "count": len(students),
            "students": [
                {
                    "id": student.id,
                    "name": student.name,
                    "roll_no": student.roll_no,
                    "attendance_percentage": student.attendance_percentage,
                }
                for student in students
            ],
        }

    async def teacher_dashboard(
        self,
        db: AsyncSession,
        principal: Principal,
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Profile and daily counters of the calling teacher.

        Students are counted across the semesters and sections of the
        subjects the teacher takes, within the teacher's department.

        Raises:
            TeacherNotFoundError: If the principal is not a stored teacher
        """
        authorize(principal, Action.VIEW_DASHBOARD)
        try:
            teacher_id = int(principal.user_id)
        except ValueError:
            raise TeacherNotFoundError(principal.user_id) from None
        teacher = await self.teachers.get(db, teacher_id)
        day = today or date.today()

        subjects = teacher.subjects or []
        semesters = sorted({int(subject["semester"]) for subject in subjects})
        sections = sorted({str(subject["section"]).upper() for subject in subjects})

        total_students = await self.repository.count_students(db, teacher.department, semesters, sections)
        low_attendance = await self.repository.count_students(
            db, teacher.department, semesters, below_attendance=settings.attendance_threshold
        )
        marked = await self.store.subjects_marked_on(db, principal.user_id, day)

        breakdown: Dict[str, int] = {}
        for subject in subjects:
            section = str(subject["section"]).upper()
            key = f"Semester {subject['semester']} - Section {section}"
            if key not in breakdown:
                breakdown[key] = await self.repository.count_students(
                    db, teacher.department, [int(subject["semester"])], [section]
                )

        return {
            "teacher": {
                "id": teacher.id,
                "name": teacher.name,
                "employee_id": teacher.employee_id,
                "email": teacher.email,
                "department": teacher.department,
                "role": teacher.role,
                "phone": teacher.phone,
                "subjects": list(subjects),
            },
            "date": day.isoformat(),
            "total_students": total_students,
            "low_attendance_count": low_attendance,
            "marked_today": sorted(code or WHOLE_DAY_SUBJECT for code in marked),
            "student_breakdown": breakdown,
        }
