"""
Assignment service: coursework set by teachers and submitted by students.

Teachers set assignments for the exact classes they teach and grade the
submissions of their own assignments. Students see the active assignments
of their class and submit (or resubmit) before or after the due date; a
submission after the due date is recorded as late. Only submission
metadata is kept here; file storage belongs to the hosting application.
"""

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from edutrack.core.exceptions import AuthorizationError, StudentNotFoundError, ValidationError
from edutrack.models import ASSIGNMENT_STATUSES, SUBMISSION_STATUSES, Assignment, AssignmentSubmission, Student
from edutrack.schemas import AssignmentInput, GradeInput, SubmissionInput, as_utc, parse_input
from edutrack.services.permissions import Action, Principal, authorize, teaches_class
from edutrack.utils.repository import AssignmentStore, StudentRepository


def in_class(student: Student, assignment: Assignment) -> bool:
    """Whether the student belongs to the class the assignment was set for."""
    return (
        student.department == assignment.department
        and student.semester == assignment.semester
        and (student.section or "").upper() == assignment.section
        and student.batch == assignment.batch
    )


def marks_statistics(marks) -> Dict[str, Any]:
    """Graded count, mean (2 decimals), highest and lowest of awarded marks."""
    marks = list(marks)
    if not marks:
        return {"graded_count": 0, "average_marks": 0.0, "highest_marks": None, "lowest_marks": None}
    return {
        "graded_count": len(marks),
        "average_marks": round(sum(marks) / len(marks), 2),
        "highest_marks": max(marks),
        "lowest_marks": min(marks),
    }


def assignment_view(assignment: Assignment) -> Dict[str, Any]:
    return {
        "id": assignment.id,
        "title": assignment.title,
        "description": assignment.description,
        "instructions": assignment.instructions,
        "subject_code": assignment.subject_code,
        "subject_name": assignment.subject_name,
        "department": assignment.department,
        "semester": assignment.semester,
        "section": assignment.section,
        "batch": assignment.batch,
        "due_date": as_utc(assignment.due_date).isoformat(),
        "total_marks": assignment.total_marks,
        "tags": list(assignment.tags or []),
        "status": assignment.status,
        "created_by": assignment.created_by,
        "total_students": assignment.total_students,
        "submissions_count": assignment.submissions_count,
        "graded_count": assignment.graded_count,
        "average_marks": assignment.average_marks,
        "highest_marks": assignment.highest_marks,
        "lowest_marks": assignment.lowest_marks,
    }


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)}


def check_paging(page: int, limit: int) -> None:
    if not isinstance(page, int) or page < 1:
        raise ValidationError("page must be a positive integer", field="page")
    if not isinstance(limit, int) or not 1 <= limit <= 100:
        raise ValidationError("limit must be between 1 and 100", field="limit")


class AssignmentService:
    """Creates assignments, records submissions and grades them."""

    def __init__(
        self,
        store: Optional[AssignmentStore] = None,
        repository: Optional[StudentRepository] = None,
        now: Optional[Callable[[], datetime]] = None
    ):
        self.store = store or AssignmentStore()
        self.repository = repository or StudentRepository()
        self.now = now or (lambda: datetime.now(timezone.utc))

    async def create_assignment(self, db: AsyncSession, principal: Principal, data: Any) -> Assignment:
        """
        Set a new assignment for one of the caller's classes.

        Args:
            db: Database session
            principal: Teacher setting the assignment
            data: AssignmentInput fields

        Returns:
            The stored assignment, with the class size at creation time

        Raises:
            ValidationError: If a required field is missing or malformed
            AuthorizationError: If the caller does not teach this subject to this class
        """
        assignment_input = parse_input(AssignmentInput, data)
        authorize(principal, Action.CREATE_ASSIGNMENT)
        if not teaches_class(
            principal,
            assignment_input.subject_code,
            assignment_input.semester,
            assignment_input.section,
            assignment_input.batch,
            assignment_input.department,
        ):
            logger.warning(
                f"Teacher {principal.user_id} denied assignment for {assignment_input.subject_code} "
                f"semester {assignment_input.semester} section {assignment_input.section}"
            )
            raise AuthorizationError(
                "You are not assigned to teach this subject/section",
                action=Action.CREATE_ASSIGNMENT.value
            )

        try:
            total_students = await self.repository.count_students(
                db,
                assignment_input.department,
                [assignment_input.semester],
                [assignment_input.section],
                batch=assignment_input.batch,
            )
            assignment = await self.store.add(db, Assignment(
                created_by=principal.user_id,
                total_students=total_students,
                **assignment_input.model_dump(),
            ))
            await db.commit()

        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Assignment {assignment.id} '{assignment.title}' set by {principal.user_id} "
            f"for {assignment.subject_code} ({total_students} students)"
        )
        return assignment

    async def list_teacher_assignments(
        self,
        db: AsyncSession,
        principal: Principal,
        status: Optional[str] = None,
        subject_code: Optional[str] = None,
        semester: Optional[int] = None,
        page: int = 1,
        limit: int = 10
    ) -> Dict[str, Any]:
        """The caller's assignments, newest first, optionally filtered."""
        if status is not None and status not in ASSIGNMENT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ASSIGNMENT_STATUSES)}", field="status")
        check_paging(page, limit)
        authorize(principal, Action.REVIEW_SUBMISSIONS)

        assignments, total = await self.store.list_created_by(
            db,
            principal.user_id,
            status=status,
            subject_code=subject_code.strip().upper() if subject_code else None,
            semester=semester,
            page=page,
            limit=limit,
        )
        return {
            "assignments": [assignment_view(assignment) for assignment in assignments],
            "pagination": pagination(page, limit, total),
        }

    async def list_student_assignments(
        self,
        db: AsyncSession,
        principal: Principal,
        subject_code: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Active assignments of the calling student's class, earliest due first.

        Each assignment carries the student's submission status ("pending"
        until they submit) and whether its due date has passed.
        """
        authorize(principal, Action.VIEW_ASSIGNMENTS)
        student = await self.repository.find_by_id(db, int(principal.user_id))
        if student is None:
            raise StudentNotFoundError(principal.user_id)

        assignments = await self.store.list_for_class(
            db,
            student.department,
            student.semester,
            (student.section or "").upper(),
            student.batch,
            subject_code=subject_code.strip().upper() if subject_code else None,
        )
        submissions = await self.store.submissions_by_student(db, student.id, [a.id for a in assignments])
        now = as_utc(self.now())

        rows = []
        for assignment in assignments:
            submission = submissions.get(assignment.id)
            row = assignment_view(assignment)
            row.update({
                "submission_status": submission.status if submission else "pending",
                "submitted_at": as_utc(submission.submitted_at).isoformat() if submission else None,
                "marks_obtained": submission.marks_obtained if submission else None,
                "due_status": "overdue" if now > as_utc(assignment.due_date) else "pending",
            })
            rows.append(row)

        return {
            "student": {
                "name": student.name,
                "roll_no": student.roll_no,
                "department": student.department,
                "semester": student.semester,
                "section": student.section,
            },
            "assignments": rows,
        }

    async def submit_assignment(
        self,
        db: AsyncSession,
        principal: Principal,
        assignment_id: int,
        student_notes: str = ""
    ) -> Dict[str, Any]:
        """
        Record the calling student's submission.

        A second submission replaces the first and bumps its resubmission
        count; only first submissions raise the assignment's submission count.

        Raises:
            AssignmentNotFoundError: If the assignment does not exist
            AuthorizationError: If the student is not in the assignment's class
        """
        notes = parse_input(SubmissionInput, {"student_notes": student_notes or ""})
        authorize(principal, Action.SUBMIT_ASSIGNMENT)

        try:
            assignment = await self.store.get(db, assignment_id, for_update=True)
            student = await self.repository.find_by_id(db, int(principal.user_id))
            if student is None or not in_class(student, assignment):
                raise AuthorizationError("You are not enrolled in this class", action=Action.SUBMIT_ASSIGNMENT.value)

            submitted_at = as_utc(self.now())
            is_late = submitted_at > as_utc(assignment.due_date)
            status = "late" if is_late else "submitted"

            submission = await self.store.find_submission(db, assignment.id, student.id, for_update=True)
            if submission is not None:
                submission.submitted_at = submitted_at
                submission.status = status
                submission.student_notes = notes.student_notes
                submission.resubmission_count += 1
            else:
                submission = AssignmentSubmission(
                    assignment_id=assignment.id,
                    student_id=student.id,
                    submitted_at=submitted_at,
                    status=status,
                    student_notes=notes.student_notes,
                    resubmission_count=0,
                    total_marks=assignment.total_marks,
                )
                assignment.submissions_count += 1
            await self.store.add(db, submission)
            await db.commit()

        except Exception:
            await db.rollback()
            raise

        logger.info(f"Assignment {assignment.id} submitted by {student.roll_no}{' (late)' if is_late else ''}")
        return {
            "submission_id": submission.id,
            "submitted_at": submitted_at.isoformat(),
            "is_late": is_late,
            "due_date": as_utc(assignment.due_date).isoformat(),
        }

    async def assignment_submissions(
        self,
        db: AsyncSession,
        principal: Principal,
        assignment_id: int,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Dict[str, Any]:
        """
        Submissions of one of the caller's assignments, latest first.

        Statistics cover every submission of the assignment, not just the page.
        """
        if status is not None and status not in SUBMISSION_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SUBMISSION_STATUSES)}", field="status")
        check_paging(page, limit)
        authorize(principal, Action.REVIEW_SUBMISSIONS)

        assignment = await self.store.get(db, assignment_id)
        if assignment.created_by != principal.user_id:
            raise AuthorizationError(
                "You are not authorized to view submissions for this assignment",
                action=Action.REVIEW_SUBMISSIONS.value
            )

        rows, total = await self.store.submissions_for(db, assignment.id, status=status, page=page, limit=limit)
        all_submissions = total if status is None else await self.store.count_submissions(db, assignment.id)
        stats = marks_statistics(await self.store.marks_awarded(db, assignment.id))

        return {
            "assignment": {
                "id": assignment.id,
                "title": assignment.title,
                "subject_code": assignment.subject_code,
                "total_marks": assignment.total_marks,
                "due_date": as_utc(assignment.due_date).isoformat(),
                "total_students": assignment.total_students,
            },
            "submissions": [
                {
                    "id": submission.id,
                    "student": {"id": student.id, "name": student.name, "roll_no": student.roll_no, "email": student.email},
                    "status": submission.status,
                    "submitted_at": as_utc(submission.submitted_at).isoformat(),
                    "resubmission_count": submission.resubmission_count,
                    "student_notes": submission.student_notes,
                    "marks_obtained": submission.marks_obtained,
                    "total_marks": submission.total_marks,
                    "grade": submission.grade,
                    "feedback": submission.feedback,
                    "graded_by": submission.graded_by,
                }
                for submission, student in rows
            ],
            "statistics": {
                "total_submissions": all_submissions,
                "graded_count": stats["graded_count"],
                "pending_count": all_submissions - stats["graded_count"],
                "average_marks": stats["average_marks"],
                "highest_marks": stats["highest_marks"] or 0,
                "lowest_marks": stats["lowest_marks"] or 0,
            },
            "pagination": pagination(page, limit, total),
        }

    async def grade_submission(
        self,
        db: AsyncSession,
        principal: Principal,
        submission_id: int,
        marks_obtained: Any,
        feedback: str = "",
        grade: str = ""
    ) -> AssignmentSubmission:
        """
        Grade a submission of one of the caller's assignments.

        The assignment's graded count, mean, highest and lowest marks are
        recomputed in the same transaction.

        Raises:
            ValidationError: If marks are missing, negative or above the assignment's total
            SubmissionNotFoundError: If the submission does not exist
            AuthorizationError: If the caller did not set the assignment
        """
        grading = parse_input(GradeInput, {
            "marks_obtained": marks_obtained,
            "feedback": feedback or "",
            "grade": grade or "",
        })
        authorize(principal, Action.GRADE_SUBMISSION)

        try:
            submission = await self.store.get_submission(db, submission_id, for_update=True)
            assignment = await self.store.get(db, submission.assignment_id, for_update=True)
            if assignment.created_by != principal.user_id:
                raise AuthorizationError(
                    "You are not authorized to grade this submission",
                    action=Action.GRADE_SUBMISSION.value
                )
            if grading.marks_obtained > assignment.total_marks:
                raise ValidationError(
                    f"Marks cannot exceed {assignment.total_marks:g}",
                    field="marks_obtained"
                )

            submission.marks_obtained = float(grading.marks_obtained)
            submission.feedback = grading.feedback
            submission.grade = grading.grade
            submission.graded_by = principal.user_id
            submission.graded_at = as_utc(self.now())
            submission.status = "graded"
            await self.store.add(db, submission)

            stats = marks_statistics(await self.store.marks_awarded(db, assignment.id))
            assignment.graded_count = stats["graded_count"]
            assignment.average_marks = stats["average_marks"]
            assignment.highest_marks = stats["highest_marks"]
            assignment.lowest_marks = stats["lowest_marks"]
            await self.store.add(db, assignment)
            await db.commit()

        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Submission {submission.id} graded {submission.marks_obtained:g}/{assignment.total_marks:g} "
            f"by {principal.user_id}"
        )
        return submission
