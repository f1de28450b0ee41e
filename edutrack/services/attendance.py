"""
Attendance counter service.

Batches of attendance marks update the per-student counters with atomic SQL
increments and append one audit record per mark, all inside one
transaction. Either the whole batch lands or none of it does.
"""

import datetime
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from edutrack.core.exceptions import ConflictError, StudentNotFoundError, ValidationError
from edutrack.models import WHOLE_DAY_SUBJECT, AttendanceRecord, Student
from edutrack.schemas import (
    AttendanceAdjustment,
    AttendanceBatchResult,
    AttendanceEntry,
    parse_input,
)
from edutrack.services.permissions import Action, Principal, authorize
from edutrack.services.standing import recompute_standing
from edutrack.utils.repository import AttendanceStore, CounterIncrement, StudentRepository


# Statuses that count towards attended classes
ATTENDED_STATUSES = frozenset({"present", "late"})


def parse_entries(entries: Sequence[Any]) -> List[AttendanceEntry]:
    """
    Validate every entry of a batch before anything is written.

    Raises:
        ValidationError: For an empty batch or the first malformed entry
    """
    if not isinstance(entries, (list, tuple)) or not entries:
        raise ValidationError("At least one attendance entry is required", field="entries")

    parsed = []
    for index, entry in enumerate(entries):
        try:
            parsed.append(parse_input(AttendanceEntry, entry))
        except ValidationError as e:
            field = f"entries[{index}]"
            if e.details.get("field"):
                field = f"{field}.{e.details['field']}"
            raise ValidationError(
                f"Invalid attendance entry at position {index}: {e.message}",
                field=field,
                details={"errors": e.details.get("errors", [])}
            ) from e
    return parsed


def count_increments(
    entries: Sequence[AttendanceEntry],
    today: datetime.date
) -> Tuple[Dict[int, CounterIncrement], List[datetime.date]]:
    """
    Fold a validated batch into per-student counter increments.
    Whole-day marks (no subject code) may repeat; per-subject marks may not.

    Returns:
        (increments by student id, sorted distinct dates in the batch)

    Raises:
        ConflictError: If a (student, date, subject) mark appears twice
    """
    increments: Dict[int, CounterIncrement] = {}
    seen: Set[Tuple[int, datetime.date, str]] = set()
    dates: Set[datetime.date] = set()

    for entry in entries:
        day = entry.effective_date(today)
        if entry.subject_code is not None:
            key = (entry.student_id, day, entry.subject_code)
            if key in seen:
                raise ConflictError(
                    f"Duplicate attendance for student {entry.student_id} on {day.isoformat()}"
                    f" ({entry.subject_code})",
                    details={
                        "student_id": entry.student_id,
                        "date": day.isoformat(),
                        "subject_code": entry.subject_code,
                    }
                )
            seen.add(key)
        dates.add(day)

        inc = increments.setdefault(entry.student_id, CounterIncrement())
        inc.total += 1
        if entry.status in ATTENDED_STATUSES:
            inc.attended += 1
        if entry.status == "present":
            inc.present += 1
        elif entry.status == "late":
            inc.late += 1
        else:
            inc.absent += 1

    return increments, sorted(dates)


def round_half_up(value: float) -> int:
    """Round a non-negative percentage to the nearest whole number, halves up."""
    return int(value + 0.5)


def summarize_history(student: Student, records: Sequence[AttendanceRecord]) -> Dict[str, Any]:
    """
    Build the attendance history view of a student.

    Args:
        student: Student whose counters form the overall summary
        records: Audit records, any order

    Returns:
        Summary counters, day-by-day history (oldest first) and a monthly trend
    """
    by_date: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    monthly: Dict[str, Dict[str, int]] = {}

    for record in sorted(records, key=lambda r: (r.date, r.id or 0)):
        date_key = record.date.isoformat()
        day = by_date.setdefault(date_key, {
            "date": date_key,
            "total": 0,
            "present": 0,
            "late": 0,
            "absent": 0,
            "subjects": [],
        })
        day["total"] += 1
        day[record.status] += 1
        day["subjects"].append({
            "subject_code": record.subject_code or WHOLE_DAY_SUBJECT,
            "subject_name": record.subject_name or "N/A",
            "status": record.status,
            "marked_by": record.created_by,
        })

        month = monthly.setdefault(date_key[:7], {"attended": 0, "total": 0})
        month["total"] += 1
        if record.status in ATTENDED_STATUSES:
            month["attended"] += 1

    monthly_trend = [
        {
            "month": month,
            "percentage": round_half_up(stats["attended"] * 100.0 / stats["total"]) if stats["total"] else 0,
        }
        for month, stats in sorted(monthly.items())
    ]

    return {
        "summary": {
            "name": student.name,
            "roll_no": student.roll_no,
            "department": student.department,
            "batch": student.batch,
            "semester": student.semester,
            "overall": {
                "attended_classes": student.attended_classes,
                "total_classes": student.total_classes,
                "attendance_percentage": student.attendance_percentage,
                "present": student.present_count,
                "late": student.late_count,
                "absent": student.absent_count,
            },
        },
        "monthly_trend": monthly_trend,
        "daily_history": list(by_date.values()),
    }


class AttendanceCounter:
    """Applies attendance batches and serves attendance views."""

    def __init__(
        self,
        repository: Optional[StudentRepository] = None,
        store: Optional[AttendanceStore] = None,
        today: Optional[Callable[[], datetime.date]] = None
    ):
        self.repository = repository or StudentRepository()
        self.store = store or AttendanceStore()
        self.today = today or datetime.date.today

    async def apply_attendance_batch(
        self,
        db: AsyncSession,
        principal: Principal,
        entries: Sequence[Any]
    ) -> AttendanceBatchResult:
        """
        Record a batch of attendance marks atomically.

        Args:
            db: Database session
            principal: Caller (Teacher or HOD)
            entries: Attendance entry dicts or AttendanceEntry models

        Returns:
            AttendanceBatchResult with the mark count, covered dates and student count

        Raises:
            ValidationError: If the batch is empty or any entry is malformed
            ConflictError: If a mark is duplicated in the batch or already stored
            StudentNotFoundError: If any entry names an unknown student
            AuthorizationError: If the caller does not teach one of the students
        """
        parsed = parse_entries(entries)
        authorize(principal, Action.MARK_ATTENDANCE)
        today = self.today()
        increments, dates = count_increments(parsed, today)

        try:
            students = await self.repository.find_many(db, increments.keys(), for_update=True)
            found = {student.id for student in students}
            missing = sorted(set(increments) - found)
            if missing:
                raise StudentNotFoundError(missing[0])
            authorize(principal, Action.MARK_ATTENDANCE, students)

            await self.repository.bulk_increment(db, increments)
            await self.store.insert_many(db, [
                AttendanceRecord(
                    student_id=entry.student_id,
                    date=entry.effective_date(today),
                    status=entry.status,
                    subject_code=entry.subject_code,
                    subject_name=entry.subject_name,
                    created_by=principal.user_id,
                )
                for entry in parsed
            ])

            for student in await self.repository.find_many(db, increments.keys(), for_update=True):
                recompute_standing(student, clear_override=True)
                await self.repository.save(db, student)

            await db.commit()

        except Exception as e:
            await db.rollback()
            logger.warning(f"Attendance batch from {principal.user_id} rejected: {e}")
            raise

        logger.info(
            f"Attendance marked by {principal.user_id}: {len(parsed)} entries "
            f"for {len(increments)} students on {', '.join(d.isoformat() for d in dates)}"
        )
        return AttendanceBatchResult(
            marked_count=len(parsed),
            student_count=len(increments),
            dates=dates,
        )

    async def adjust_attendance(
        self,
        db: AsyncSession,
        principal: Principal,
        student_id: int,
        attended: int,
        total: int
    ) -> Student:
        """
        Add a manual correction to a student's attendance counters.

        No audit records are written. Both values are added to the existing
        counters, with attended never exceeding total.
        """
        adjustment = parse_input(AttendanceAdjustment, {"attended": attended, "total": total})
        authorize(principal, Action.ADJUST_ATTENDANCE)

        try:
            student = await self.repository.get(db, student_id, for_update=True)
            authorize(principal, Action.ADJUST_ATTENDANCE, [student])

            await self.repository.bulk_increment(db, {
                student.id: CounterIncrement(total=adjustment.total, attended=adjustment.attended)
            })
            student = await self.repository.get(db, student_id, for_update=True)
            recompute_standing(student, clear_override=True)
            await self.repository.save(db, student)
            await db.commit()

        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Attendance of {student.roll_no} adjusted by +{adjustment.attended}/{adjustment.total}: "
            f"{student.attendance_percentage:.2f}%"
        )
        return student

    async def attendance_history(self, db: AsyncSession, principal: Principal, student_id: int) -> Dict[str, Any]:
        """Overall counters, day-by-day history and monthly trend of one student."""
        authorize(principal, Action.VIEW_RECORD)
        student = await self.repository.get(db, student_id)
        authorize(principal, Action.VIEW_RECORD, [student])

        records = await self.store.history_for_student(db, student.id)
        return summarize_history(student, records)
