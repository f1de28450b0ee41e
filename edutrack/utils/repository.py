"""
Storage adapters for the standing engine.

The repositories and stores wrap the async session with the few
queries the services need. They never commit: the calling service owns the
transaction.
"""

import datetime
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from edutrack.core.exceptions import (
    AssignmentNotFoundError,
    StudentNotFoundError,
    SubmissionNotFoundError,
    TeacherNotFoundError,
    translate_store_errors,
)
from edutrack.models import Assignment, AssignmentSubmission, AttendanceRecord, Student, Teacher


@dataclass
class CounterIncrement:
    """Per-student attendance counter deltas."""
    total: int = 0
    attended: int = 0
    present: int = 0
    late: int = 0
    absent: int = 0


class StudentRepository:
    """
    Reads and writes the student aggregate.

    Lookups used ahead of a write take a row lock where the backend
    supports it, so the recomputation always sees the freshest document.
    """

    async def find_by_id(self, db: AsyncSession, student_id: int, for_update: bool = False) -> Optional[Student]:
        """
        Get a student by primary key.

        Args:
            db: Database session
            student_id: Student primary key
            for_update: Lock the row and refresh any cached copy

        Returns:
            Student if found, None otherwise
        """
        stmt = select(Student).where(Student.id == student_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        with translate_store_errors("student lookup"):
            result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_roll_no(self, db: AsyncSession, roll_no: str, for_update: bool = False) -> Optional[Student]:
        stmt = select(Student).where(Student.roll_no == roll_no)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        with translate_store_errors("student lookup"):
            result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, db: AsyncSession, student_id: int, for_update: bool = False) -> Student:
        """Like find_by_id but raises StudentNotFoundError."""
        student = await self.find_by_id(db, student_id, for_update=for_update)
        if student is None:
            raise StudentNotFoundError(student_id)
        return student

    async def find_many(self, db: AsyncSession, student_ids: Iterable[int], for_update: bool = False) -> List[Student]:
        ids = sorted(set(student_ids))
        if not ids:
            return []
        stmt = select(Student).where(Student.id.in_(ids)).order_by(Student.id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        with translate_store_errors("student lookup"):
            result = await db.execute(stmt)
        return list(result.scalars().all())

    async def add(self, db: AsyncSession, student: Student) -> Student:
        """Register a new student (administrative registration)."""
        student.email = student.email.strip().lower()
        student.section = student.section.strip().upper()
        db.add(student)
        with translate_store_errors("student registration"):
            await db.flush()
        logger.info(f"Registered student {student.roll_no}")
        return student

    async def save(self, db: AsyncSession, student: Student) -> Student:
        """Flush the student's pending changes (derived fields, documents)."""
        db.add(student)
        with translate_store_errors("student save"):
            await db.flush()
        return student

    async def bulk_increment(self, db: AsyncSession, increments: Dict[int, CounterIncrement]) -> None:
        """
        Apply attendance counter increments as atomic SQL updates.

        The percentage is recomputed from the updated counters in the same
        statement so it can never disagree with them.

        Raises:
            StudentNotFoundError: If any student id matches no row
        """
        for student_id, inc in sorted(increments.items()):
            new_total = Student.total_classes + inc.total
            new_attended = Student.attended_classes + inc.attended
            stmt = (
                update(Student)
                .where(Student.id == student_id)
                .values(
                    total_classes=new_total,
                    attended_classes=new_attended,
                    present_count=Student.present_count + inc.present,
                    late_count=Student.late_count + inc.late,
                    absent_count=Student.absent_count + inc.absent,
                    attendance_percentage=case(
                        (new_total > 0, new_attended * 100.0 / new_total),
                        else_=0.0,
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            with translate_store_errors("attendance counter update"):
                result = await db.execute(stmt)
            if result.rowcount == 0:
                raise StudentNotFoundError(student_id)

    async def list_at_risk(self, db: AsyncSession) -> List[Student]:
        """Students currently flagged at risk, highest score first."""
        with translate_store_errors("at-risk listing"):
            result = await db.execute(
                select(Student)
                .where(Student.is_at_risk.is_(True))
                .order_by(Student.risk_score.desc(), Student.roll_no)
            )
        return list(result.scalars().all())

    async def list_in_classes(self, db: AsyncSession, classes: Sequence[tuple]) -> List[Student]:
        """
        Students enrolled in any of the given (semester, section, batch) classes.

        Args:
            db: Database session
            classes: Iterable of (semester, section, batch) tuples
        """
        classes = list(dict.fromkeys(classes))
        if not classes:
            return []
        with translate_store_errors("class roster"):
            result = await db.execute(
                select(Student)
                .where(or_(*[
                    and_(
                        Student.semester == semester,
                        Student.section == section,
                        Student.batch == batch,
                    )
                    for semester, section, batch in classes
                ]))
                .order_by(Student.roll_no)
            )
        return list(result.scalars().all())

    async def search(
        self,
        db: AsyncSession,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Student], int]:
        """
        One page of the student directory, ordered by roll number.

        ``search`` matches case-insensitively anywhere in the name, roll
        number, email or batch.

        Returns:
            (students on the page, total number of matching students)
        """
        count_stmt = select(func.count()).select_from(Student)
        page_stmt = select(Student).order_by(Student.roll_no).offset((page - 1) * limit).limit(limit)
        if search:
            condition = or_(
                Student.name.icontains(search, autoescape=True),
                Student.roll_no.icontains(search, autoescape=True),
                Student.email.icontains(search, autoescape=True),
                Student.batch.icontains(search, autoescape=True),
            )
            count_stmt = count_stmt.where(condition)
            page_stmt = page_stmt.where(condition)

        with translate_store_errors("student directory"):
            total = (await db.execute(count_stmt)).scalar_one()
            result = await db.execute(page_stmt)
        return list(result.scalars().all()), total

    async def list_class(self, db: AsyncSession, department: str, semester: int, section: str) -> List[Student]:
        """Students of one department, semester and section, by roll number."""
        with translate_store_errors("class list"):
            result = await db.execute(
                select(Student)
                .where(
                    Student.department == department,
                    Student.semester == semester,
                    Student.section == section,
                )
                .order_by(Student.roll_no)
            )
        return list(result.scalars().all())

    async def count_students(
        self,
        db: AsyncSession,
        department: str,
        semesters: Iterable[int],
        sections: Optional[Iterable[str]] = None,
        batch: Optional[str] = None,
        below_attendance: Optional[float] = None
    ) -> int:
        """
        Count students of a department in any of the given semesters.

        Args:
            sections: Restrict to these sections
            batch: Restrict to one batch
            below_attendance: Only students with recorded classes whose
                attendance percentage is under this value
        """
        semesters = list(semesters)
        if not semesters:
            return 0
        stmt = (
            select(func.count())
            .select_from(Student)
            .where(Student.department == department, Student.semester.in_(semesters))
        )
        if sections is not None:
            stmt = stmt.where(Student.section.in_(list(sections)))
        if batch is not None:
            stmt = stmt.where(Student.batch == batch)
        if below_attendance is not None:
            stmt = stmt.where(
                Student.total_classes > 0,
                Student.attendance_percentage < below_attendance,
            )
        with translate_store_errors("student count"):
            return (await db.execute(stmt)).scalar_one()


class AttendanceStore:
    """Append-only store of attendance audit records."""

    async def insert_many(self, db: AsyncSession, records: Sequence[AttendanceRecord]) -> int:
        """
        Insert audit records inside the caller's transaction.

        Raises:
            ConflictError: If a (student, date, subject) record already exists
        """
        db.add_all(records)
        with translate_store_errors("attendance insert"):
            await db.flush()
        return len(records)

    async def history_for_student(self, db: AsyncSession, student_id: int) -> List[AttendanceRecord]:
        """All records for a student, latest first."""
        with translate_store_errors("attendance history"):
            result = await db.execute(
                select(AttendanceRecord)
                .where(AttendanceRecord.student_id == student_id)
                .order_by(AttendanceRecord.date.desc(), AttendanceRecord.id.desc())
            )
        return list(result.scalars().all())

    async def subjects_marked_on(self, db: AsyncSession, created_by: str, day: datetime.date) -> List[Optional[str]]:
        """Distinct subject codes a teacher marked on a day (None for whole-day marking)."""
        with translate_store_errors("attendance lookup"):
            result = await db.execute(
                select(distinct(AttendanceRecord.subject_code))
                .where(AttendanceRecord.created_by == created_by, AttendanceRecord.date == day)
            )
        return list(result.scalars().all())


class TeacherRepository:
    """Reads and registers teaching staff."""

    async def find_by_id(self, db: AsyncSession, teacher_id: int) -> Optional[Teacher]:
        with translate_store_errors("teacher lookup"):
            result = await db.execute(select(Teacher).where(Teacher.id == teacher_id))
        return result.scalar_one_or_none()

    async def get(self, db: AsyncSession, teacher_id: int) -> Teacher:
        """Like find_by_id but raises TeacherNotFoundError."""
        teacher = await self.find_by_id(db, teacher_id)
        if teacher is None:
            raise TeacherNotFoundError(teacher_id)
        return teacher

    async def add(self, db: AsyncSession, teacher: Teacher) -> Teacher:
        """Register a new teacher (administrative registration)."""
        db.add(teacher)
        with translate_store_errors("teacher registration"):
            await db.flush()
        logger.info(f"Registered teacher {teacher.employee_id}")
        return teacher


class AssignmentStore:
    """Assignments and their submissions."""

    async def add(self, db: AsyncSession, row):
        """Insert or flush an assignment or submission inside the caller's transaction."""
        db.add(row)
        with translate_store_errors("assignment write"):
            await db.flush()
        return row

    async def get(self, db: AsyncSession, assignment_id: int, for_update: bool = False) -> Assignment:
        """
        Get an assignment by primary key.

        Raises:
            AssignmentNotFoundError: If no assignment has this id
        """
        stmt = select(Assignment).where(Assignment.id == assignment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        with translate_store_errors("assignment lookup"):
            assignment = (await db.execute(stmt)).scalar_one_or_none()
        if assignment is None:
            raise AssignmentNotFoundError(assignment_id)
        return assignment

    async def list_created_by(
        self,
        db: AsyncSession,
        created_by: str,
        status: Optional[str] = None,
        subject_code: Optional[str] = None,
        semester: Optional[int] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Assignment], int]:
        """One page of a teacher's assignments, newest first, with the total count."""
        conditions = [Assignment.created_by == created_by]
        if status:
            conditions.append(Assignment.status == status)
        if subject_code:
            conditions.append(Assignment.subject_code == subject_code)
        if semester is not None:
            conditions.append(Assignment.semester == semester)

        with translate_store_errors("assignment listing"):
            total = (await db.execute(
                select(func.count()).select_from(Assignment).where(*conditions)
            )).scalar_one()
            result = await db.execute(
                select(Assignment)
                .where(*conditions)
                .order_by(Assignment.created_at.desc(), Assignment.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        return list(result.scalars().all()), total

    async def list_for_class(
        self,
        db: AsyncSession,
        department: str,
        semester: int,
        section: str,
        batch: str,
        subject_code: Optional[str] = None
    ) -> List[Assignment]:
        """Active assignments of one class, earliest due date first."""
        stmt = select(Assignment).where(
            Assignment.department == department,
            Assignment.semester == semester,
            Assignment.section == section,
            Assignment.batch == batch,
            Assignment.status == "active",
        )
        if subject_code:
            stmt = stmt.where(Assignment.subject_code == subject_code)
        with translate_store_errors("assignment listing"):
            result = await db.execute(stmt.order_by(Assignment.due_date, Assignment.id))
        return list(result.scalars().all())

    async def find_submission(
        self,
        db: AsyncSession,
        assignment_id: int,
        student_id: int,
        for_update: bool = False
    ) -> Optional[AssignmentSubmission]:
        stmt = select(AssignmentSubmission).where(
            AssignmentSubmission.assignment_id == assignment_id,
            AssignmentSubmission.student_id == student_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        with translate_store_errors("submission lookup"):
            return (await db.execute(stmt)).scalar_one_or_none()

    async def get_submission(self, db: AsyncSession, submission_id: int, for_update: bool = False) -> AssignmentSubmission:
        """
        Raises:
            SubmissionNotFoundError: If no submission has this id
        """
        stmt = select(AssignmentSubmission).where(AssignmentSubmission.id == submission_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        with translate_store_errors("submission lookup"):
            submission = (await db.execute(stmt)).scalar_one_or_none()
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        return submission

    async def submissions_by_student(
        self,
        db: AsyncSession,
        student_id: int,
        assignment_ids: Iterable[int]
    ) -> Dict[int, AssignmentSubmission]:
        """A student's submissions keyed by assignment id."""
        ids = list(assignment_ids)
        if not ids:
            return {}
        with translate_store_errors("submission lookup"):
            result = await db.execute(
                select(AssignmentSubmission).where(
                    AssignmentSubmission.student_id == student_id,
                    AssignmentSubmission.assignment_id.in_(ids),
                )
            )
        return {submission.assignment_id: submission for submission in result.scalars().all()}

    async def submissions_for(
        self,
        db: AsyncSession,
        assignment_id: int,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Tuple[AssignmentSubmission, Student]], int]:
        """One page of an assignment's submissions with their students, latest first."""
        conditions = [AssignmentSubmission.assignment_id == assignment_id]
        if status:
            conditions.append(AssignmentSubmission.status == status)

        with translate_store_errors("submission listing"):
            total = (await db.execute(
                select(func.count()).select_from(AssignmentSubmission).where(*conditions)
            )).scalar_one()
            result = await db.execute(
                select(AssignmentSubmission, Student)
                .join(Student, Student.id == AssignmentSubmission.student_id)
                .where(*conditions)
                .order_by(AssignmentSubmission.submitted_at.desc(), AssignmentSubmission.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        return [tuple(row) for row in result.all()], total

    async def count_submissions(self, db: AsyncSession, assignment_id: int) -> int:
        with translate_store_errors("submission statistics"):
            return (await db.execute(
                select(func.count())
                .select_from(AssignmentSubmission)
                .where(AssignmentSubmission.assignment_id == assignment_id)
            )).scalar_one()

    async def marks_awarded(self, db: AsyncSession, assignment_id: int) -> List[float]:
        """Marks of every graded submission of an assignment."""
        with translate_store_errors("submission statistics"):
            result = await db.execute(
                select(AssignmentSubmission.marks_obtained).where(
                    AssignmentSubmission.assignment_id == assignment_id,
                    AssignmentSubmission.marks_obtained.is_not(None),
                )
            )
        return [float(marks) for marks in result.scalars().all()]
