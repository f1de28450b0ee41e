"""
Academic aggregation over a student's full semester history.

Everything here is recomputed from scratch on each call so that repeated
uploads can never leave drift behind.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable


def graded_credits_of(record: Dict[str, Any]) -> float:
    """
    Credits of the subjects that carry a grade.

    Records written before the graded total was stored fall back to their
    subject list, and summary-only records count all their credits.
    """
    if "graded_credits" in record:
        return float(record["graded_credits"] or 0)
    if "subjects" in record:
        return float(sum(
            subject.get("credits") or 0
            for subject in record["subjects"] or []
            if subject.get("grade") is not None
        ))
    return float(record.get("total_credits") or 0)


@dataclass(frozen=True)
class AcademicSummary:
    cgpa: float
    total_credits: float
    earned_credits: float
    current_backlogs: int
    total_backlogs_ever: int
    has_graded_credits: bool


def recompute_cgpa(
    academics: Iterable[Dict[str, Any]],
    previous_total_backlogs_ever: int = 0
) -> AcademicSummary:
    """
    Fold every semester record into CGPA, credits and backlog counts.

    CGPA is the credit-weighted mean of the semester SGPAs. Current backlogs
    are the sum of each semester's backlogs. The lifetime backlog count only
    ever grows: a re-upload with fewer failures does not reduce it. A
    history whose subjects are all ungraded has no graded credits.

    Args:
        academics: Semester records as stored on the student
        previous_total_backlogs_ever: Lifetime count already persisted

    Returns:
        AcademicSummary for the history
    """
    weighted_points = 0.0
    total_credits = 0.0
    graded_credits = 0.0
    earned_credits = 0.0
    current_backlogs = 0

    for record in academics or []:
        sem_credits = float(record.get("total_credits") or 0)
        weighted_points += float(record.get("sgpa") or 0) * sem_credits
        total_credits += sem_credits
        graded_credits += graded_credits_of(record)
        earned_credits += float(record.get("earned_credits") or 0)
        current_backlogs += int(record.get("backlogs_this_sem") or 0)

    cgpa = round(weighted_points / total_credits, 2) if total_credits > 0 else 0.0

    return AcademicSummary(
        cgpa=cgpa,
        total_credits=total_credits,
        earned_credits=earned_credits,
        current_backlogs=current_backlogs,
        total_backlogs_ever=max(int(previous_total_backlogs_ever or 0), current_backlogs),
        has_graded_credits=graded_credits > 0,
    )
