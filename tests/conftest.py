"""
EduTrack - Test Configuration and Fixtures
"""
import os
import itertools
from typing import AsyncGenerator, List, Optional, Tuple

import pytest
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession

# Set testing environment
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///:memory:'
os.environ['TELEGRAM_BOT_TOKEN'] = ''
os.environ['LOG_LEVEL'] = 'DEBUG'

from edutrack.core.database import create_database_engine, create_session_factory
from edutrack.models import Base, Student
from edutrack.services.attendance import AttendanceCounter
from edutrack.services.grade_ledger import GradeLedger
from edutrack.services.notifications import NotificationSender
from edutrack.services.permissions import Principal, Role, TaughtClass
from edutrack.services.standing import StandingService
from edutrack.utils.repository import StudentRepository

fake = Faker()

TEST_DATABASE_URL = 'sqlite+aiosqlite:///:memory:'
BATCH = '2023-2027'


class RecordingNotifier(NotificationSender):
    """Notification sender that keeps every message in memory"""

    def __init__(self):
        self.sent: List[Tuple[Optional[str], str]] = []

    async def send(self, destination: Optional[str], body: str) -> bool:
        self.sent.append((destination, body))
        return True


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database and session for each test"""
    engine = create_database_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = create_session_factory(engine)
    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def make_student(db_session: AsyncSession):
    """Factory registering students in semester 3, section A of the CSE department"""
    roll_numbers = itertools.count(1)

    async def _make(**overrides) -> Student:
        data = dict(
            name=fake.name(),
            email=fake.unique.email(),
            roll_no=f'21CS{next(roll_numbers):03d}',
            department='CSE',
            program='B.Tech',
            batch=BATCH,
            semester=3,
            section='A',
        )
        data.update(overrides)
        student = await StudentRepository().add(db_session, Student(**data))
        await db_session.commit()
        return student

    return _make


@pytest.fixture
def reload(db_session: AsyncSession):
    """Read a student back from the database, discarding cached state"""
    async def _reload(student_id: int) -> Student:
        return await db_session.get(Student, student_id, populate_existing=True)

    return _reload


@pytest.fixture
def teacher() -> Principal:
    """Teacher of CS301 for semester 3, section A"""
    return Principal(
        user_id='T100',
        role=Role.TEACHER,
        taught_classes=(TaughtClass('CS301', 3, 'A', BATCH),),
        department='CSE',
        name='Dr. Meera Rao',
    )


@pytest.fixture
def other_teacher() -> Principal:
    """Teacher of a different section"""
    return Principal(
        user_id='T200',
        role=Role.TEACHER,
        taught_classes=(TaughtClass('CS501', 5, 'B', BATCH),),
        department='CSE',
        name='Dr. Arjun Nair',
    )


@pytest.fixture
def hod() -> Principal:
    return Principal(user_id='H1', role=Role.HOD, department='CSE', name='Prof. Iyer')


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id='A1', role=Role.ADMIN, name='Registrar')


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ledger() -> GradeLedger:
    return GradeLedger()


@pytest.fixture
def counter() -> AttendanceCounter:
    return AttendanceCounter()


@pytest.fixture
def standing(notifier: RecordingNotifier) -> StandingService:
    return StandingService(notifier=notifier)
