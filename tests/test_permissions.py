"""
Unit Tests for permission predicates
"""
import pytest

from edutrack.core.exceptions import AuthorizationError
from edutrack.models import Student, Teacher
from edutrack.services.permissions import (
    Action,
    Principal,
    Role,
    TaughtClass,
    authorize,
    can_access_student,
    teaches_student,
)


def student(student_id=1, semester=3, section='A', batch='2023-2027', department='CSE'):
    return Student(id=student_id, roll_no=f'21CS{student_id:03d}', semester=semester,
                   section=section, batch=batch, department=department)


@pytest.fixture
def teacher_principal():
    return Principal(
        user_id='7',
        role=Role.TEACHER,
        taught_classes=(TaughtClass('CS301', 3, 'A', '2023-2027'),),
        department='CSE',
    )


class TestTeachesStudent:
    """Test class coverage checks"""

    def test_matching_class(self, teacher_principal):
        assert teaches_student(teacher_principal, student()) is True

    def test_section_match_ignores_case(self, teacher_principal):
        assert teaches_student(teacher_principal, student(section='a')) is True

    @pytest.mark.parametrize('overrides', [
        {'semester': 4},
        {'section': 'B'},
        {'batch': '2022-2026'},
        {'department': 'ECE'},
    ])
    def test_other_classes(self, teacher_principal, overrides):
        assert teaches_student(teacher_principal, student(**overrides)) is False


class TestAuthorize:
    """Test role and student checks"""

    def test_teacher_may_mark_taught_student(self, teacher_principal):
        authorize(teacher_principal, Action.MARK_ATTENDANCE, [student()])

    def test_teacher_denied_for_untaught_student(self, teacher_principal):
        with pytest.raises(AuthorizationError) as exc_info:
            authorize(teacher_principal, Action.UPLOAD_GRADES, [student(), student(2, section='C')])

        assert exc_info.value.code == 'NOT_AUTHORIZED'
        assert exc_info.value.details['action'] == 'upload_grades'

    def test_hod_unrestricted(self):
        hod = Principal(user_id='1', role=Role.HOD)

        authorize(hod, Action.UPLOAD_GRADES, [student(section='Z', semester=8)])
        assert can_access_student(hod, student(section='Z')) is True

    def test_admin_cannot_mark_attendance(self):
        with pytest.raises(AuthorizationError):
            authorize(Principal(user_id='1', role=Role.ADMIN), Action.MARK_ATTENDANCE)

    def test_student_only_reads_self(self):
        me = Principal.for_student(student(5))

        authorize(me, Action.VIEW_RECORD, [student(5)])
        with pytest.raises(AuthorizationError):
            authorize(me, Action.VIEW_RECORD, [student(6)])
        with pytest.raises(AuthorizationError):
            authorize(me, Action.ADD_WARNING)


class TestPrincipalFromTeacher:
    """Test building a principal from a stored teacher"""

    def test_taught_classes_from_subjects(self):
        teacher = Teacher(
            id=12,
            employee_id='EMP012',
            name='Dr. Sen',
            email='sen@example.edu',
            department='CSE',
            role='HOD',
            subjects=[
                {'subject_code': 'CS301', 'subject_name': 'Databases', 'semester': 3, 'section': 'a', 'batch': '2023-2027'},
            ],
        )

        principal = Principal.from_teacher(teacher)

        assert principal.user_id == '12'
        assert principal.role == Role.HOD
        assert principal.taught_classes == (TaughtClass('CS301', 3, 'A', '2023-2027'),)
        assert principal.department == 'CSE'

    def test_deactivated_teacher_refused(self):
        teacher = Teacher(id=13, employee_id='EMP013', name='Dr. Rao', email='rao@example.edu',
                          department='CSE', role='Teacher', subjects=[], is_active=False)

        with pytest.raises(AuthorizationError):
            Principal.from_teacher(teacher)

    def test_identifiers_normalized(self):
        teacher = Teacher(employee_id=' emp014 ', name='Dr. Iyer', email='Iyer@Example.EDU',
                          department='CSE', role='Teacher', subjects=[])

        assert teacher.employee_id == 'EMP014'
        assert teacher.email == 'iyer@example.edu'
