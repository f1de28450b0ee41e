"""
Grade ledger: semester grade uploads and SGPA computation.

A semester upload replaces the student's existing record for that
semester number; the history never holds two records for one semester.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from edutrack.core.exceptions import StudentNotFoundError
from edutrack.schemas import (
    FAILING_GRADES,
    GRADE_POINTS,
    SemesterUpload,
    SemesterUploadResult,
    SubjectInput,
    parse_input,
)
from edutrack.services.permissions import Action, Principal, authorize
from edutrack.services.standing import recompute_standing
from edutrack.utils.repository import StudentRepository


def grade_points_for(grade: Optional[str]) -> int:
    """Points for a grade on the fixed scale; ungraded subjects score 0."""
    if not grade:
        return 0
    return GRADE_POINTS.get(grade, 0)


def compute_sgpa(subjects: Iterable[Dict[str, Any]]) -> float:
    """Credit-weighted mean of grade points, rounded to 2 decimals (0 without credits)."""
    total_points = 0.0
    total_credits = 0.0
    for subject in subjects:
        total_points += subject["grade_points"] * subject["credits"]
        total_credits += subject["credits"]
    return round(total_points / total_credits, 2) if total_credits > 0 else 0.0


def build_semester_record(semester: int, subjects: Sequence[SubjectInput]) -> Dict[str, Any]:
    """
    Build the embedded semester document for a list of validated subjects.

    Args:
        semester: Semester number
        subjects: Validated subject inputs

    Returns:
        Semester record with per-subject grade points, SGPA, credit totals
        (all, graded and earned) and the semester's backlog count
    """
    processed: List[Dict[str, Any]] = []
    sem_total_credits = 0.0
    graded_credits = 0.0
    earned_credits = 0.0
    backlogs = 0

    for subject in subjects:
        grade = subject.grade.value if subject.grade is not None else None
        points = grade_points_for(grade)

        processed.append({
            "subject_name": subject.subject_name,
            "subject_code": subject.subject_code,
            "credits": subject.credits,
            "grade": grade,
            "grade_points": points,
            "marks": subject.marks,
        })

        sem_total_credits += subject.credits
        if grade is not None:
            graded_credits += subject.credits
        if points > 0:
            earned_credits += subject.credits
        if grade in FAILING_GRADES:
            backlogs += 1

    return {
        "semester": semester,
        "subjects": processed,
        "sgpa": compute_sgpa(processed),
        "total_credits": sem_total_credits,
        "graded_credits": graded_credits,
        "earned_credits": earned_credits,
        "backlogs_this_sem": backlogs,
    }


def replace_semester(academics: Iterable[Dict[str, Any]], record: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Drop any record with the same semester number, add the new one, keep semester order."""
    kept = [existing for existing in academics or [] if existing.get("semester") != record["semester"]]
    kept.append(record)
    return sorted(kept, key=lambda existing: existing["semester"])


class GradeLedger:
    """Applies semester grade uploads to the student aggregate."""

    def __init__(self, repository: Optional[StudentRepository] = None):
        self.repository = repository or StudentRepository()

    async def upsert_semester(
        self,
        db: AsyncSession,
        principal: Principal,
        roll_no: str,
        semester: int,
        subjects: Sequence[Any]
    ) -> SemesterUploadResult:
        """
        Create or replace a student's record for one semester.

        Args:
            db: Database session
            principal: Caller (Teacher or HOD)
            roll_no: Student roll number
            semester: Positive semester number
            subjects: Subject dicts or SubjectInput models

        Returns:
            SemesterUploadResult with the new record and refreshed standing

        Raises:
            ValidationError: If the semester or any subject is malformed
            StudentNotFoundError: If no student has this roll number
            AuthorizationError: If the caller may not grade this student
        """
        upload = parse_input(SemesterUpload, {"semester": semester, "subjects": list(subjects or [])})
        authorize(principal, Action.UPLOAD_GRADES)

        try:
            student = await self.repository.find_by_roll_no(db, roll_no, for_update=True)
            if student is None:
                raise StudentNotFoundError(roll_no)
            authorize(principal, Action.UPLOAD_GRADES, [student])

            record = build_semester_record(upload.semester, upload.subjects)

            previous = student.semester_record(upload.semester)
            previous_backlogs = previous.get("backlogs_this_sem", 0) if previous else 0
            new_backlogs = max(record["backlogs_this_sem"] - previous_backlogs, 0)
            student.total_backlogs_ever = (student.total_backlogs_ever or 0) + new_backlogs

            student.academics = replace_semester(student.academics, record)
            recompute_standing(student, clear_override=True)

            await self.repository.save(db, student)
            await db.commit()

        except Exception as e:
            await db.rollback()
            logger.warning(f"Grade upload for {roll_no} semester {semester} rejected: {e}")
            raise

        logger.info(
            f"Semester {record['semester']} uploaded for {student.roll_no}: "
            f"SGPA {record['sgpa']}, CGPA {student.cgpa}, risk {student.risk_level}"
        )

        return SemesterUploadResult(
            student_id=student.id,
            student_name=student.name,
            semester=record["semester"],
            record=record,
            sgpa=record["sgpa"],
            cgpa=student.cgpa,
            backlogs_this_sem=record["backlogs_this_sem"],
            current_backlogs=student.current_backlogs,
            risk_score=student.risk_score,
            risk_level=student.risk_level,
        )
