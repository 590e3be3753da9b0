import random
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from worktime.core.exceptions import (
    AlreadyActiveError, BreakAlreadyOpenError, NoActiveSessionError, NoOpenBreakError, NotFoundError,
    StateConflictError,
)
from worktime.models.hr.daily_attendance import DailyAttendance
from worktime.models.hr.time_session import TimeSession, TimeSessionBreak
from worktime.models.shared.enums import (
    AuditAction, BreakEndSource, DailyAttendanceStatus, SessionClosedBy, TimeSessionStatus
)
from worktime.services.auth.audit_service import AuditService
from worktime.services.hr.recovery_service import RecoveryService
from worktime.services.hr.time_session_service import TimeSessionService
from worktime.utils.date_time import local_date
from tests.helpers import FakeClock, at


@pytest.fixture
async def employee(make_user):
    return await make_user()


@pytest.fixture
def service(db, clock):
    return TimeSessionService(db, clock=clock, request_context={"ip_address": "10.0.0.7", "user_agent": "pytest"})


class TestClockIn:
    async def test_opens_active_session_on_local_date(self, service, employee, clock):
        time_session = await service.clock_in(employee.id, notes="office")

        assert time_session.status == TimeSessionStatus.ACTIVE
        assert time_session.session_date == date(2026, 3, 2)
        assert time_session.notes == "office"
        assert time_session.breaks == []

    async def test_second_clock_in_is_rejected(self, service, db, employee):
        user_id = employee.id
        await service.clock_in(user_id)
        with pytest.raises(AlreadyActiveError):
            await service.clock_in(user_id)

        active = await db.scalar(
            select(func.count(TimeSession.id)).where(
                TimeSession.user_id == user_id,
                TimeSession.status == TimeSessionStatus.ACTIVE,
            )
        )
        assert active == 1

    async def test_active_session_from_yesterday_still_blocks(self, db, employee):
        yesterday = TimeSessionService(db, clock=FakeClock(at(2026, 3, 1, 17, 0)))
        await yesterday.clock_in(employee.id)

        today = TimeSessionService(db, clock=FakeClock(at(2026, 3, 2, 9, 0)))
        with pytest.raises(AlreadyActiveError):
            await today.clock_in(employee.id)

    async def test_inactive_user_cannot_clock_in(self, service, make_user):
        inactive = await make_user(is_active=False)
        with pytest.raises(NotFoundError):
            await service.clock_in(inactive.id)


class TestBreaks:
    async def test_break_requires_active_session(self, service, employee):
        with pytest.raises(NoActiveSessionError):
            await service.start_break(employee.id)

    async def test_only_one_open_break(self, service, employee, clock):
        await service.clock_in(employee.id)
        clock.advance(hours=2)
        await service.start_break(employee.id, reason="Lunch")
        with pytest.raises(BreakAlreadyOpenError):
            await service.start_break(employee.id)

    async def test_end_break_without_open_break(self, service, employee):
        await service.clock_in(employee.id)
        with pytest.raises(NoOpenBreakError):
            await service.end_break(employee.id)

    async def test_user_ended_break(self, service, employee, clock):
        await service.clock_in(employee.id)
        clock.advance(hours=3)
        await service.start_break(employee.id, reason="Lunch")
        clock.advance(minutes=30)
        time_session = await service.end_break(employee.id)

        brk = time_session.breaks[0]
        assert brk.duration_minutes == 30
        assert brk.end_source == BreakEndSource.USER
        assert brk.reason == "Lunch"
        assert time_session.total_break_minutes == 30


class TestClockOut:
    async def test_without_session(self, service, employee):
        with pytest.raises(NoActiveSessionError):
            await service.clock_out(employee.id)

    async def test_full_day_is_aggregated_before_returning(self, service, db, employee, default_shift, clock):
        await service.clock_in(employee.id)
        clock.advance(hours=3)
        await service.start_break(employee.id)
        clock.advance(minutes=30)
        await service.end_break(employee.id)
        clock.advance(hours=5, minutes=30)
        time_session = await service.clock_out(employee.id)

        assert time_session.status == TimeSessionStatus.COMPLETED
        assert time_session.closed_by == SessionClosedBy.USER
        assert time_session.total_break_minutes == 30
        assert time_session.total_work_minutes == 510

        record = await db.scalar(select(DailyAttendance).where(DailyAttendance.user_id == employee.id))
        assert record.attendance_date == date(2026, 3, 2)
        assert record.work_minutes == 510
        assert record.break_minutes == 30
        assert record.shift_type_id == default_shift.id
        assert record.is_late_check_in is False
        assert record.is_early_check_out is False
        assert record.is_overtime is False
        assert record.attendance_percentage == 100
        assert record.status == DailyAttendanceStatus.PRESENT
        assert [s["session_id"] for s in record.sessions] == [time_session.id]

    async def test_open_break_is_closed_and_marked(self, service, employee, clock):
        await service.clock_in(employee.id)
        clock.advance(hours=4)
        await service.start_break(employee.id)
        clock.advance(minutes=20)
        time_session = await service.clock_out(employee.id, note="left for the dentist")

        brk = time_session.breaks[0]
        assert brk.break_end is not None
        assert brk.end_source == BreakEndSource.AUTO_CLOCK_OUT
        assert brk.duration_minutes == 20
        assert time_session.total_break_minutes == 20
        assert time_session.total_work_minutes == 240
        assert time_session.notes.endswith("left for the dentist")

    async def test_work_minutes_never_negative(self, service, employee, clock):
        await service.clock_in(employee.id)
        await service.start_break(employee.id)
        time_session = await service.clock_out(employee.id)
        assert time_session.total_work_minutes == 0

    async def test_can_clock_in_again_after_clock_out(self, service, employee, clock):
        await service.clock_in(employee.id)
        clock.advance(hours=2)
        await service.clock_out(employee.id)
        clock.advance(minutes=30)
        second = await service.clock_in(employee.id)
        assert second.status == TimeSessionStatus.ACTIVE

    async def test_two_sessions_same_day_aggregate_together(self, service, db, employee, default_shift, clock):
        user_id = employee.id
        await service.clock_in(user_id)
        clock.advance(hours=4)
        await service.clock_out(user_id)

        record = await db.scalar(select(DailyAttendance).where(DailyAttendance.user_id == user_id))
        assert record.is_early_check_out is True
        assert record.status == DailyAttendanceStatus.HALF_DAY

        clock.advance(hours=1)
        await service.clock_in(user_id)
        clock.advance(hours=4)
        await service.clock_out(user_id)

        db.expire_all()
        record = await db.scalar(select(DailyAttendance).where(DailyAttendance.user_id == user_id))
        assert record.work_minutes == 480
        assert record.is_early_check_out is False
        assert record.status == DailyAttendanceStatus.PRESENT
        assert len(record.sessions) == 2


class TestLifecycleAudit:
    async def test_each_transition_is_audited(self, service, db, employee, clock):
        await service.clock_in(employee.id)
        clock.advance(hours=1)
        await service.start_break(employee.id)
        clock.advance(minutes=10)
        await service.end_break(employee.id)
        clock.advance(hours=1)
        await service.clock_out(employee.id)

        page = await AuditService(db).list_logs(affected_user_id=employee.id)
        actions = sorted(entry.action for entry in page["data"])
        assert page["count"] == 4
        assert actions == sorted([
            AuditAction.CLOCK_IN, AuditAction.BREAK_START, AuditAction.BREAK_END, AuditAction.CLOCK_OUT
        ])

        clock_out = next(e for e in page["data"] if e.action == AuditAction.CLOCK_OUT)
        assert clock_out.user_id == employee.id
        assert clock_out.ip_address == "10.0.0.7"
        assert clock_out.payload.old_values.status == TimeSessionStatus.ACTIVE
        assert clock_out.payload.new_values.status == TimeSessionStatus.COMPLETED
        assert clock_out.payload.new_values.total_work_minutes == 120


class TestQueries:
    async def test_active_status_live_counters(self, service, employee, clock):
        await service.clock_in(employee.id)
        clock.advance(hours=2)
        await service.start_break(employee.id)
        clock.advance(minutes=15)

        status = await service.get_active_status(employee.id)
        assert status.on_break is True
        assert status.elapsed_minutes == 135
        assert status.break_minutes == 15
        assert status.work_minutes == 120

    async def test_no_active_status(self, service, employee):
        assert await service.get_active_status(employee.id) is None

    async def test_who_is_working(self, service, make_user, clock):
        first = await make_user(full_name="First")
        second = await make_user(full_name="Second")
        await service.clock_in(first.id)
        await service.clock_in(second.id)
        await service.clock_out(second.id)

        working = await service.who_is_working()
        assert [w.user_id for w in working] == [first.id]
        assert working[0].full_name == "First"

    async def test_list_sessions_filters(self, service, employee, clock):
        await service.clock_in(employee.id)
        clock.advance(hours=1)
        await service.clock_out(employee.id)
        clock.advance(hours=1)
        await service.clock_in(employee.id)

        page = await service.list_sessions(user_id=employee.id, session_status=TimeSessionStatus.COMPLETED)
        assert page["count"] == 1
        assert page["data"][0].status == TimeSessionStatus.COMPLETED


async def assert_lifecycle_invariants(db):
    active = await db.execute(
        select(TimeSession.user_id, func.count(TimeSession.id))
        .where(TimeSession.status == TimeSessionStatus.ACTIVE, TimeSession.is_deleted == False)
        .group_by(TimeSession.user_id)
    )
    assert all(count <= 1 for _, count in active.all())

    open_breaks = await db.execute(
        select(TimeSessionBreak.time_session_id, func.count(TimeSessionBreak.id))
        .where(TimeSessionBreak.break_end.is_(None))
        .group_by(TimeSessionBreak.time_session_id)
    )
    assert all(count <= 1 for _, count in open_breaks.all())

    # a closed session never keeps an open break
    dangling = await db.scalar(
        select(func.count(TimeSessionBreak.id))
        .join(TimeSession, TimeSession.id == TimeSessionBreak.time_session_id)
        .where(TimeSessionBreak.break_end.is_(None), TimeSession.status != TimeSessionStatus.ACTIVE)
    )
    assert dangling == 0


class TestRandomizedLifecycle:
    @pytest.mark.parametrize("seed", [3, 17, 2026])
    async def test_random_operations_keep_lifecycle_invariants(self, db, session_factory, make_user, seed):
        rng = random.Random(seed)
        user_ids = [(await make_user()).id for _ in range(3)]
        clock = FakeClock(at(2026, 3, 2, 7, 0))
        service = TimeSessionService(db, clock=clock)
        operations = (service.clock_in, service.clock_out, service.start_break, service.end_break)

        for _ in range(80):
            clock.advance(minutes=rng.randint(1, 240))
            if rng.random() < 0.1:
                yesterday = local_date(clock()) - timedelta(days=1)
                await RecoveryService(session_factory, clock=clock).run_stuck_session_sweep(yesterday)
                db.expire_all()
            else:
                operation = rng.choice(operations)
                try:
                    await operation(rng.choice(user_ids))
                except StateConflictError:
                    pass
            await assert_lifecycle_invariants(db)
