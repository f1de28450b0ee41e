"""
Tests for assignments, submissions and grading
"""
import datetime

import pytest
from sqlalchemy import select

from edutrack.core.exceptions import (
    AssignmentNotFoundError,
    AuthorizationError,
    SubmissionNotFoundError,
    ValidationError,
)
from edutrack.models import Assignment, AssignmentSubmission
from edutrack.services.assignments import AssignmentService, marks_statistics
from edutrack.services.permissions import Principal, Role, TaughtClass

NOW = datetime.datetime(2025, 3, 14, 10, 0, tzinfo=datetime.timezone.utc)
BATCH = '2023-2027'


class Clock:
    """Settable replacement for the service clock"""

    def __init__(self, now: datetime.datetime):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now


def assignment_data(**overrides):
    data = dict(
        title='ER modelling',
        subject_code='cs301',
        subject_name='Databases',
        department='CSE',
        semester=3,
        section='a',
        batch=BATCH,
        due_date=NOW + datetime.timedelta(days=7),
        tags='sql, design,',
    )
    data.update(overrides)
    return data


@pytest.fixture
def clock() -> Clock:
    return Clock(NOW)


@pytest.fixture
def assignments(clock) -> AssignmentService:
    return AssignmentService(now=clock)


@pytest.fixture
def co_teacher() -> Principal:
    """Second teacher of the same class"""
    return Principal(
        user_id='T300',
        role=Role.TEACHER,
        taught_classes=(TaughtClass('CS301', 3, 'A', BATCH),),
        department='CSE',
    )


async def fetch_submission(db, assignment_id, student_id) -> AssignmentSubmission:
    result = await db.execute(
        select(AssignmentSubmission)
        .where(AssignmentSubmission.assignment_id == assignment_id, AssignmentSubmission.student_id == student_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestCreateAssignment:
    """Test setting assignments"""

    async def test_create_counts_class(self, db_session, assignments, teacher, make_student):
        await make_student()
        await make_student()
        await make_student(section='B')

        assignment = await assignments.create_assignment(db_session, teacher, assignment_data())

        assert assignment.subject_code == 'CS301'
        assert assignment.section == 'A'
        assert assignment.tags == ['sql', 'design']
        assert assignment.total_marks == 100
        assert assignment.status == 'active'
        assert assignment.created_by == teacher.user_id
        assert assignment.total_students == 2

    async def test_teacher_must_teach_the_class(self, db_session, assignments, other_teacher):
        with pytest.raises(AuthorizationError):
            await assignments.create_assignment(db_session, other_teacher, assignment_data())

    async def test_wrong_batch_refused(self, db_session, assignments, teacher):
        with pytest.raises(AuthorizationError):
            await assignments.create_assignment(db_session, teacher, assignment_data(batch='2022-2026'))

    @pytest.mark.parametrize('missing', ['title', 'subject_code', 'batch', 'due_date'])
    async def test_required_fields(self, db_session, assignments, teacher, missing):
        data = assignment_data()
        del data[missing]

        with pytest.raises(ValidationError) as exc_info:
            await assignments.create_assignment(db_session, teacher, data)

        assert exc_info.value.details['field'] == missing

    async def test_students_cannot_create(self, db_session, assignments, make_student):
        student = await make_student()

        with pytest.raises(AuthorizationError):
            await assignments.create_assignment(db_session, Principal.for_student(student), assignment_data())

    async def test_teacher_listing_newest_first(self, db_session, assignments, teacher):
        first = await assignments.create_assignment(db_session, teacher, assignment_data(title='First'))
        second = await assignments.create_assignment(db_session, teacher, assignment_data(title='Second'))

        listing = await assignments.list_teacher_assignments(db_session, teacher)
        closed = await assignments.list_teacher_assignments(db_session, teacher, status='closed')
        other_subject = await assignments.list_teacher_assignments(db_session, teacher, subject_code='cs302')

        assert [a['id'] for a in listing['assignments']] == [second.id, first.id]
        assert listing['pagination'] == {'page': 1, 'limit': 10, 'total': 2, 'pages': 1}
        assert closed['assignments'] == []
        assert other_subject['pagination']['total'] == 0


class TestSubmissions:
    """Test student submissions"""

    async def test_student_view_tracks_submission(self, db_session, assignments, clock, teacher, make_student):
        student = await make_student()
        me = Principal.for_student(student)
        assignment = await assignments.create_assignment(db_session, teacher, assignment_data())

        before = await assignments.list_student_assignments(db_session, me)
        await assignments.submit_assignment(db_session, me, assignment.id, 'first draft')
        clock.now = NOW + datetime.timedelta(days=8)
        after = await assignments.list_student_assignments(db_session, me)

        assert [a['id'] for a in before['assignments']] == [assignment.id]
        assert before['assignments'][0]['submission_status'] == 'pending'
        assert before['assignments'][0]['due_status'] == 'pending'
        assert after['assignments'][0]['submission_status'] == 'submitted'
        assert after['assignments'][0]['due_status'] == 'overdue'
        assert after['student']['roll_no'] == student.roll_no

    async def test_late_resubmission(self, db_session, assignments, clock, teacher, make_student):
        student = await make_student()
        me = Principal.for_student(student)
        assignment = await assignments.create_assignment(db_session, teacher, assignment_data())

        on_time = await assignments.submit_assignment(db_session, me, assignment.id)
        clock.now = NOW + datetime.timedelta(days=10)
        late = await assignments.submit_assignment(db_session, me, assignment.id, 'fixed diagram')

        assert on_time['is_late'] is False
        assert late['is_late'] is True
        assert late['submission_id'] == on_time['submission_id']

        submission = await fetch_submission(db_session, assignment.id, student.id)
        assert submission.status == 'late'
        assert submission.resubmission_count == 1
        assert submission.student_notes == 'fixed diagram'
        stored = await db_session.get(Assignment, assignment.id, populate_existing=True)
        assert stored.submissions_count == 1

    async def test_student_outside_class_refused(self, db_session, assignments, teacher, make_student):
        outsider = await make_student(section='B')
        assignment = await assignments.create_assignment(db_session, teacher, assignment_data())
        assignment_id = assignment.id

        with pytest.raises(AuthorizationError):
            await assignments.submit_assignment(db_session, Principal.for_student(outsider), assignment_id)

        stored = await db_session.get(Assignment, assignment_id, populate_existing=True)
        assert stored.submissions_count == 0

    async def test_unknown_assignment(self, db_session, assignments, make_student):
        student = await make_student()

        with pytest.raises(AssignmentNotFoundError):
            await assignments.submit_assignment(db_session, Principal.for_student(student), 4242)

    async def test_closed_assignments_hidden_from_students(self, db_session, assignments, teacher, make_student):
        student = await make_student()
        assignment = await assignments.create_assignment(db_session, teacher, assignment_data())
        assignment.status = 'closed'
        await db_session.commit()

        view = await assignments.list_student_assignments(db_session, Principal.for_student(student))

        assert view['assignments'] == []


class TestGrading:
    """Test grading and assignment statistics"""

    async def submitted(self, db_session, assignments, teacher, make_student, count):
        assignment = await assignments.create_assignment(db_session, teacher, assignment_data())
        submissions = []
        for _ in range(count):
            student = await make_student()
            result = await assignments.submit_assignment(db_session, Principal.for_student(student), assignment.id)
            submissions.append(result['submission_id'])
        return assignment.id, submissions

    async def test_grading_updates_statistics(self, db_session, assignments, teacher, make_student):
        assignment_id, (first, second) = await self.submitted(db_session, assignments, teacher, make_student, 2)

        graded = await assignments.grade_submission(db_session, teacher, first, 80, feedback='Good', grade='A')
        await assignments.grade_submission(db_session, teacher, second, 65.5)

        assert graded.status == 'graded'
        assert graded.graded_by == teacher.user_id
        stored = await db_session.get(Assignment, assignment_id, populate_existing=True)
        assert stored.graded_count == 2
        assert stored.average_marks == 72.75
        assert stored.highest_marks == 80
        assert stored.lowest_marks == 65.5

        view = await assignments.assignment_submissions(db_session, teacher, assignment_id)
        assert view['statistics'] == {
            'total_submissions': 2,
            'graded_count': 2,
            'pending_count': 0,
            'average_marks': 72.75,
            'highest_marks': 80,
            'lowest_marks': 65.5,
        }
        assert len(view['submissions']) == 2

    async def test_marks_cannot_exceed_total(self, db_session, assignments, teacher, make_student):
        assignment_id, (submission_id,) = await self.submitted(db_session, assignments, teacher, make_student, 1)

        with pytest.raises(ValidationError) as exc_info:
            await assignments.grade_submission(db_session, teacher, submission_id, 101)

        assert exc_info.value.details['field'] == 'marks_obtained'
        stored = await db_session.get(AssignmentSubmission, submission_id, populate_existing=True)
        assert stored.status == 'submitted'
        assert stored.marks_obtained is None

    async def test_marks_required(self, db_session, assignments, teacher, make_student):
        _, (submission_id,) = await self.submitted(db_session, assignments, teacher, make_student, 1)

        with pytest.raises(ValidationError):
            await assignments.grade_submission(db_session, teacher, submission_id, None)

    async def test_only_the_setter_grades(self, db_session, assignments, teacher, co_teacher, make_student):
        assignment_id, (submission_id,) = await self.submitted(db_session, assignments, teacher, make_student, 1)

        with pytest.raises(AuthorizationError):
            await assignments.grade_submission(db_session, co_teacher, submission_id, 50)
        with pytest.raises(AuthorizationError):
            await assignments.assignment_submissions(db_session, co_teacher, assignment_id)

    async def test_unknown_submission(self, db_session, assignments, teacher):
        with pytest.raises(SubmissionNotFoundError):
            await assignments.grade_submission(db_session, teacher, 4242, 50)

    def test_statistics_of_no_marks(self):
        assert marks_statistics([]) == {
            'graded_count': 0, 'average_marks': 0.0, 'highest_marks': None, 'lowest_marks': None,
        }
