import os
import tempfile
from datetime import datetime, time
from typing import AsyncGenerator
from uuid import uuid4

# Settings are read once at import time; pin them before anything under worktime loads
_TEST_DIR = tempfile.mkdtemp(prefix="worktime-tests-")
os.environ["TIMEZONE"] = "UTC"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/app.db"
os.environ["LOG_DIR"] = os.path.join(_TEST_DIR, "logs")
os.environ["AGGREGATION_LOCK_BACKEND"] = "local"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from worktime.models import AuditLog, DailyAttendance, ShiftType, TimeSession, TimeSessionBreak, User, UserShift  # noqa: F401
from worktime.models.base import Base
from worktime.models.shared.enums import TimeSessionSource, TimeSessionStatus, UserRole
from worktime.utils.date_time import local_date

from tests.helpers import FakeClock, at


@pytest.fixture
async def engine(tmp_path):
    """File-backed database so separate sessions see each other's commits"""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock(at(2026, 3, 2, 9, 0))


@pytest.fixture
def make_user(db):
    async def _make(role: UserRole = UserRole.EMPLOYEE, is_active: bool = True, full_name: str = "Test User") -> User:
        user = User(
            email=f"{uuid4().hex[:10]}@example.com",
            full_name=full_name,
            role=role,
            is_active=is_active,
            is_deleted=False,
        )
        db.add(user)
        await db.commit()
        return user
    return _make


@pytest.fixture
def make_shift(db):
    async def _make(
        name: str = "Day",
        start: time = time(9, 0),
        end: time = time(18, 0),
        break_minutes: int = 60,
        grace_minutes: int = 15,
        is_default: bool = False,
    ) -> ShiftType:
        shift = ShiftType(
            name=name,
            start_time=start,
            end_time=end,
            break_duration_minutes=break_minutes,
            late_grace_minutes=grace_minutes,
            is_default=is_default,
            is_active=True,
            is_deleted=False,
        )
        db.add(shift)
        await db.commit()
        return shift
    return _make


@pytest.fixture
async def default_shift(make_shift):
    """09:00-18:00, 60 minute break, 15 minute grace: 540 shift minutes, 480 expected"""
    return await make_shift(is_default=True)


@pytest.fixture
def add_completed_session(db):
    async def _add(user: User, clock_in: datetime, clock_out: datetime, break_minutes: int = 0) -> TimeSession:
        elapsed = int((clock_out - clock_in).total_seconds() // 60)
        time_session = TimeSession(
            user_id=user.id,
            session_date=local_date(clock_in),
            clock_in=clock_in,
            clock_out=clock_out,
            status=TimeSessionStatus.COMPLETED,
            source=TimeSessionSource.LIVE,
            total_work_minutes=max(0, elapsed - break_minutes),
            total_break_minutes=break_minutes,
            is_deleted=False,
        )
        db.add(time_session)
        await db.commit()
        return time_session
    return _add
