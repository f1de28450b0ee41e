"""
Tests for semester grade uploads
"""
import pytest

from edutrack.core.exceptions import AuthorizationError, StudentNotFoundError, ValidationError
from edutrack.services.permissions import Principal


def subject(code, credits, grade, name=None):
    return {'subject_name': name or f'Subject {code}', 'subject_code': code, 'credits': credits, 'grade': grade}


class TestUpsertSemester:
    """Test the grade ledger against a real session"""

    async def test_upload_computes_sgpa_and_standing(self, db_session, ledger, teacher, make_student, reload):
        """One failed 4-credit subject and an A in a 3-credit subject"""
        student = await make_student()

        result = await ledger.upsert_semester(
            db_session, teacher, student.roll_no, 3,
            [subject('CS301', 4, 'F'), subject('CS302', 3, 'A')]
        )

        assert result.student_name == student.name
        assert result.semester == 3
        assert result.sgpa == 3.43
        assert result.cgpa == 3.43
        assert result.backlogs_this_sem == 1
        assert result.current_backlogs == 1
        assert result.risk_score == pytest.approx(32.85)
        assert result.risk_level == 'Medium'

        stored = await reload(student.id)
        assert len(stored.academics) == 1
        assert stored.earned_credits == 3
        assert stored.total_credits == 7
        assert stored.total_backlogs_ever == 1

    async def test_reupload_replaces_semester(self, db_session, ledger, teacher, make_student, reload):
        """Uploading the same semester twice keeps a single record"""
        student = await make_student()
        await ledger.upsert_semester(db_session, teacher, student.roll_no, 3, [subject('CS301', 4, 'F')])

        result = await ledger.upsert_semester(db_session, teacher, student.roll_no, 3, [subject('CS301', 4, 'A+')])

        stored = await reload(student.id)
        assert len(stored.academics) == 1
        assert stored.academics[0]['sgpa'] == 9.0
        assert result.current_backlogs == 0
        assert stored.current_backlogs == 0
        # The cleared failure still counts towards the lifetime total
        assert stored.total_backlogs_ever == 1

    async def test_cgpa_spans_all_semesters(self, db_session, ledger, hod, make_student, reload):
        student = await make_student()
        await ledger.upsert_semester(db_session, hod, student.roll_no, 1, [subject('MA101', 20, 'O')])
        await ledger.upsert_semester(db_session, hod, student.roll_no, 2, [subject('MA201', 20, 'A')])

        stored = await reload(student.id)
        assert [r['semester'] for r in stored.academics] == [1, 2]
        assert stored.cgpa == 9.0
        assert stored.risk_level == 'Low'

    async def test_unknown_roll_number(self, db_session, ledger, teacher):
        with pytest.raises(StudentNotFoundError) as exc_info:
            await ledger.upsert_semester(db_session, teacher, 'NOPE-1', 3, [subject('CS301', 4, 'A')])

        assert exc_info.value.code == 'STUDENT_NOT_FOUND'

    @pytest.mark.parametrize('semester,subjects', [
        (0, [subject('CS301', 4, 'A')]),
        (3, []),
        (3, [subject('CS301', 0, 'A')]),
        (3, [subject('CS301', 4, 'Z')]),
        (3, [subject('  ', 4, 'A')]),
    ])
    async def test_invalid_input_rejected(self, db_session, ledger, teacher, make_student, reload, semester, subjects):
        student = await make_student()
        student_id = student.id

        with pytest.raises(ValidationError):
            await ledger.upsert_semester(db_session, teacher, student.roll_no, semester, subjects)

        stored = await reload(student_id)
        assert stored.academics == []

    async def test_teacher_must_teach_student(self, db_session, ledger, other_teacher, make_student, reload):
        student = await make_student()
        student_id = student.id

        with pytest.raises(AuthorizationError):
            await ledger.upsert_semester(db_session, other_teacher, student.roll_no, 3, [subject('CS301', 4, 'A')])

        stored = await reload(student_id)
        assert stored.academics == []

    async def test_students_cannot_upload(self, db_session, ledger, make_student):
        student = await make_student()

        with pytest.raises(AuthorizationError):
            await ledger.upsert_semester(
                db_session, Principal.for_student(student), student.roll_no, 3, [subject('CS301', 4, 'O')]
            )

    async def test_upload_clears_manual_override(self, db_session, ledger, standing, teacher, make_student, reload):
        student = await make_student()
        await standing.override_risk(db_session, teacher, student.id, True)

        await ledger.upsert_semester(db_session, teacher, student.roll_no, 3, [subject('CS301', 4, 'O')])

        stored = await reload(student.id)
        assert stored.risk_overridden is False
        assert stored.risk_level == 'Low'
        assert stored.is_at_risk is False

    async def test_all_ungraded_semester_adds_no_risk(self, db_session, ledger, teacher, make_student, reload):
        """Credits without grades are not measured, so CGPA contributes nothing"""
        student = await make_student()

        result = await ledger.upsert_semester(
            db_session, teacher, student.roll_no, 3,
            [subject('CS301', 4, None), subject('CS302', 3, None)]
        )

        assert result.sgpa == 0.0
        assert result.cgpa == 0.0
        assert result.risk_score == 0
        assert result.risk_level == 'Low'

        stored = await reload(student.id)
        assert stored.total_credits == 7
        assert stored.academics[0]['graded_credits'] == 0
        assert stored.is_at_risk is False
