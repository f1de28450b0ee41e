"""
Unit Tests for the risk classifier
"""
import pytest

from edutrack.services.risk import classify, get_risk_level, manual_risk_level


class TestClassify:
    """Test the deterministic risk policy"""

    def test_nothing_measured_is_low(self):
        """A new student with no grades and no classes carries no risk"""
        result = classify(None, 0, None)

        assert result.risk_score == 0
        assert result.risk_level == 'Low'
        assert result.is_at_risk is False
        assert result.reasons == []

    def test_healthy_student_is_low(self):
        result = classify(8.5, 0, 92.0)

        assert result.risk_score == 0
        assert result.risk_level == 'Low'

    def test_worst_case_is_capped_at_100(self):
        result = classify(0.0, 6, 0.0)

        assert result.risk_score == 100
        assert result.risk_level == 'Critical'
        assert result.is_at_risk is True

    def test_components_add_up(self):
        """CGPA 6 adds 10, one backlog 10, 60% attendance 6"""
        result = classify(6.0, 1, 60.0)

        assert result.risk_score == pytest.approx(26.0)
        assert result.risk_level == 'Medium'
        assert result.is_at_risk is False
        assert len(result.reasons) == 3

    def test_backlog_component_caps(self):
        assert classify(None, 3, None).risk_score == 30
        assert classify(None, 10, None).risk_score == 30

    def test_score_grows_as_cgpa_falls(self):
        scores = [classify(cgpa, 0, 80.0).risk_score for cgpa in (9.0, 8.0, 7.0, 5.5, 3.0, 0.0)]

        assert scores == sorted(scores)

    def test_score_grows_as_attendance_falls(self):
        scores = [classify(8.0, 0, pct).risk_score for pct in (100.0, 75.0, 70.0, 50.0, 10.0, 0.0)]

        assert scores == sorted(scores)

    def test_score_grows_with_backlogs(self):
        scores = [classify(7.0, backlogs, 80.0).risk_score for backlogs in range(5)]

        assert scores == sorted(scores)

    def test_custom_thresholds(self):
        result = classify(6.0, 1, 60.0, thresholds={'medium': 10, 'high': 25, 'critical': 90})

        assert result.risk_level == 'High'
        assert result.is_at_risk is True

    def test_attendance_threshold_is_configurable(self):
        assert classify(None, 0, 80.0, attendance_threshold=85.0).risk_score > 0
        assert classify(None, 0, 80.0).risk_score == 0


class TestRiskLevels:
    """Test tier boundaries"""

    @pytest.mark.parametrize('score,level', [
        (0, 'Low'),
        (19.99, 'Low'),
        (20, 'Medium'),
        (39.99, 'Medium'),
        (40, 'High'),
        (59.99, 'High'),
        (60, 'Critical'),
        (100, 'Critical'),
    ])
    def test_default_tiers(self, score, level):
        assert get_risk_level(score) == level

    def test_manual_level_defaults(self):
        assert manual_risk_level(True) == 'High'
        assert manual_risk_level(False) == 'Low'
        assert manual_risk_level(True, 'Critical') == 'Critical'
