"""
Input and result models for EduTrack services.

Inputs are validated with pydantic before any storage access; results are
plain dataclasses handed back to the caller.
"""

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt, field_validator
from pydantic import ValidationError as PydanticValidationError

from edutrack.core.exceptions import ValidationError

InputModel = TypeVar("InputModel", bound=BaseModel)


class Grade(str, Enum):
    O = "O"
    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C = "C"
    F = "F"
    AB = "Ab"


# Fixed grade scale
GRADE_POINTS: Dict[str, int] = {
    "O": 10,
    "A+": 9,
    "A": 8,
    "B+": 7,
    "B": 6,
    "C": 5,
    "F": 0,
    "Ab": 0,
}

FAILING_GRADES = frozenset({"F", "Ab"})


class SubjectInput(BaseModel):
    """One subject of a semester grade upload."""

    subject_name: str = Field(..., min_length=1, max_length=200)
    subject_code: str = Field(..., min_length=1, max_length=20)
    credits: Union[StrictInt, StrictFloat] = Field(..., gt=0)
    grade: Optional[Grade] = None
    marks: Optional[Union[StrictInt, StrictFloat]] = Field(default=None, ge=0, le=100)

    @field_validator("subject_name", "subject_code")
    def strip_required_text(cls, v):
        """Reject names and codes made only of whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("grade", mode="before")
    def empty_grade_is_ungraded(cls, v):
        """An empty grade string means the subject is not graded yet."""
        if v == "":
            return None
        return v


class SemesterUpload(BaseModel):
    """Grade upload for one student and one semester."""

    semester: StrictInt = Field(..., gt=0)
    subjects: List[SubjectInput] = Field(..., min_length=1)


class AttendanceEntry(BaseModel):
    """A single attendance mark inside a batch."""

    student_id: StrictInt = Field(..., gt=0)
    status: Literal["present", "absent", "late"]
    subject_code: Optional[str] = Field(default=None, max_length=20)
    subject_name: Optional[str] = Field(default=None, max_length=200)
    date: Optional[Union[datetime.datetime, datetime.date]] = None

    @field_validator("subject_code")
    def normalize_subject_code(cls, v):
        """Subject codes are stored trimmed and upper-cased; blank means whole-day."""
        if v is None:
            return None
        v = v.strip().upper()
        return v or None

    @field_validator("subject_name")
    def normalize_subject_name(cls, v):
        if v is None:
            return None
        return v.strip() or None

    def effective_date(self, default: datetime.date) -> datetime.date:
        """Calendar date of the mark, time of day discarded."""
        if self.date is None:
            return default
        if isinstance(self.date, datetime.datetime):
            return self.date.date()
        return self.date


class WarningInput(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    def strip_reason(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class MentorInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    phone: str = Field(..., min_length=1, max_length=20)

    @field_validator("name", "phone")
    def strip_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class AttendanceAdjustment(BaseModel):
    """Manual correction of the attendance counters."""

    total: StrictInt = Field(..., ge=0)
    attended: StrictInt = Field(..., ge=0)

    @field_validator("attended")
    def attended_within_total(cls, v, info):
        total = info.data.get("total")
        if total is not None and v > total:
            raise ValueError("attended cannot exceed total")
        return v


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Timezone-aware UTC copy of a datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class DirectoryQuery(BaseModel):
    """Search and paging of the student directory."""

    search: Optional[str] = Field(default=None, max_length=100)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("search")
    def blank_search_is_none(cls, v):
        if v is None:
            return None
        return v.strip() or None


class ClassQuery(BaseModel):
    """One section of a semester in a department."""

    department: str = Field(..., min_length=1, max_length=100)
    semester: int = Field(..., gt=0)
    section: str = Field(..., min_length=1, max_length=10)

    @field_validator("department", "section")
    def strip_required_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("section")
    def upper_section(cls, v):
        return v.upper()


class AssignmentInput(BaseModel):
    """A new assignment for one class."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    subject_code: str = Field(..., min_length=1, max_length=20)
    subject_name: str = Field(..., min_length=1, max_length=200)
    department: str = Field(..., min_length=1, max_length=100)
    semester: int = Field(..., gt=0)
    section: str = Field(..., min_length=1, max_length=10)
    batch: str = Field(..., min_length=1, max_length=20)
    due_date: datetime.datetime
    total_marks: Union[StrictInt, StrictFloat] = Field(default=100, gt=0)
    instructions: str = Field(default="", max_length=5000)
    tags: List[str] = Field(default_factory=list)

    @field_validator("title", "subject_code", "subject_name", "department", "section", "batch")
    def strip_required_text(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("subject_code", "section")
    def upper_codes(cls, v):
        return v.upper()

    @field_validator("tags", mode="before")
    def split_tags(cls, v):
        """Tags may arrive as a comma-separated string."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(tag).strip() for tag in v if str(tag).strip()]

    @field_validator("due_date")
    def due_date_in_utc(cls, v):
        return as_utc(v)


class SubmissionInput(BaseModel):
    student_notes: str = Field(default="", max_length=2000)


class GradeInput(BaseModel):
    """Marks and feedback for one submission."""

    marks_obtained: Union[StrictInt, StrictFloat] = Field(..., ge=0)
    feedback: str = Field(default="", max_length=2000)
    grade: str = Field(default="", max_length=5)


def parse_input(model: Type[InputModel], data: Any) -> InputModel:
    """
    Validate raw input against a schema.

    Raises:
        ValidationError: With the failing field path when the input is malformed
    """
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e) from e


# ==================== Results ====================

@dataclass
class SemesterUploadResult:
    """Outcome of a semester grade upload."""
    student_id: int
    student_name: str
    semester: int
    record: Dict[str, Any]
    sgpa: float
    cgpa: float
    backlogs_this_sem: int
    current_backlogs: int
    risk_score: float
    risk_level: str


@dataclass
class AttendanceBatchResult:
    """Outcome of an attendance batch."""
    marked_count: int
    student_count: int
    dates: List[datetime.date] = field(default_factory=list)

    @property
    def date(self) -> Optional[datetime.date]:
        """Most recent date covered by the batch."""
        return self.dates[-1] if self.dates else None
