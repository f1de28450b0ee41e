"""Risk scoring: combines CGPA, backlogs and attendance into a score and tier."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

# Score contributions
CGPA_WEIGHT = 40.0
CGPA_SAFE_LEVEL = 8.0
BACKLOG_POINTS = 10.0
BACKLOG_WEIGHT = 30.0
ATTENDANCE_WEIGHT = 30.0
ATTENDANCE_THRESHOLD = 75.0

DEFAULT_THRESHOLDS: Dict[str, float] = {
    "medium": 20.0,
    "high": 40.0,
    "critical": 60.0,
}

AT_RISK_LEVELS = frozenset({"High", "Critical"})


@dataclass(frozen=True)
class RiskAssessment:
    risk_score: float
    risk_level: str
    is_at_risk: bool
    reasons: List[str] = field(default_factory=list)


def get_risk_level(risk_score: float, thresholds: Optional[Dict[str, float]] = None) -> str:
    """
    Categorize risk score into Low/Medium/High/Critical.

    Args:
        risk_score: Risk score (0-100)
        thresholds: Dict with 'medium', 'high', 'critical' lower bounds

    Returns:
        Risk level string
    """
    thresholds = thresholds or DEFAULT_THRESHOLDS
    if risk_score >= thresholds.get('critical', 60):
        return 'Critical'
    elif risk_score >= thresholds.get('high', 40):
        return 'High'
    elif risk_score >= thresholds.get('medium', 20):
        return 'Medium'
    else:
        return 'Low'


def classify(
    cgpa: Optional[float],
    current_backlogs: int,
    attendance_percentage: Optional[float],
    thresholds: Optional[Dict[str, float]] = None,
    attendance_threshold: float = ATTENDANCE_THRESHOLD,
) -> RiskAssessment:
    """
    Deterministic risk classification.

    Risk grows as CGPA falls below 8.0, with every current backlog, and as
    attendance falls below the attendance threshold. ``None`` for CGPA or
    attendance means nothing has been recorded yet and adds no risk.

    Returns:
        RiskAssessment with a score in [0, 100], the tier and the reasons
        that contributed to the score.
    """
    score = 0.0
    reasons: List[str] = []

    if cgpa is not None and cgpa < CGPA_SAFE_LEVEL:
        shortfall = min(CGPA_SAFE_LEVEL, CGPA_SAFE_LEVEL - max(cgpa, 0.0))
        score += CGPA_WEIGHT * shortfall / CGPA_SAFE_LEVEL
        reasons.append(f"Low CGPA ({cgpa:.2f})")

    backlogs = max(int(current_backlogs or 0), 0)
    if backlogs:
        score += min(BACKLOG_POINTS * backlogs, BACKLOG_WEIGHT)
        reasons.append(f"{backlogs} active backlog(s)")

    if attendance_percentage is not None and attendance_percentage < attendance_threshold and attendance_threshold > 0:
        shortfall = attendance_threshold - max(attendance_percentage, 0.0)
        score += ATTENDANCE_WEIGHT * shortfall / attendance_threshold
        reasons.append(f"Low attendance ({attendance_percentage:.1f}%)")

    score = round(min(max(score, 0.0), 100.0), 2)
    level = get_risk_level(score, thresholds)

    return RiskAssessment(
        risk_score=score,
        risk_level=level,
        is_at_risk=level in AT_RISK_LEVELS,
        reasons=reasons,
    )


def manual_risk_level(is_at_risk: bool, risk_level: Optional[str] = None) -> str:
    """Risk level stored by a manual override: explicit level, else High when flagged and Low when cleared."""
    if risk_level:
        return risk_level
    return "High" if is_at_risk else "Low"
