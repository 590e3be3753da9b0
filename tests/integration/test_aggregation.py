from datetime import date, time

import pytest
from sqlalchemy import func, select

from worktime.models.hr.daily_attendance import DailyAttendance
from worktime.models.shared.enums import DailyAttendanceStatus
from worktime.models.hr.shift_type import ShiftType
from worktime.schemas.hr.shift_schema import ShiftTypeUpdate
from worktime.services.hr.attendance_service import AttendanceService
from worktime.services.hr.shift_service import ShiftService
from tests.helpers import at

DAY = date(2026, 3, 2)

RECORD_FIELDS = (
    "work_minutes", "break_minutes", "is_late_check_in", "is_early_check_out", "is_overtime",
    "overtime_minutes", "attendance_percentage", "status", "sessions", "shift_type_id",
)


def snapshot(record):
    return {field: getattr(record, field) for field in RECORD_FIELDS}


@pytest.fixture
async def employee(make_user):
    return await make_user()


async def test_aggregate_is_idempotent(db, employee, default_shift, add_completed_session):
    await add_completed_session(employee, at(2026, 3, 2, 9, 20), at(2026, 3, 2, 13, 0), break_minutes=10)
    await add_completed_session(employee, at(2026, 3, 2, 14, 0), at(2026, 3, 2, 17, 30))
    service = AttendanceService(db)

    first = snapshot(await service.aggregate(employee.id, DAY))
    for _ in range(3):
        assert snapshot(await service.aggregate(employee.id, DAY)) == first

    count = await db.scalar(select(func.count(DailyAttendance.id)).where(DailyAttendance.user_id == employee.id))
    assert count == 1
    assert first["work_minutes"] == 210 + 210
    assert first["break_minutes"] == 10
    assert first["is_late_check_in"] is True
    assert first["attendance_percentage"] == 88
    assert first["status"] == DailyAttendanceStatus.HALF_DAY


async def test_overtime_day(db, employee, default_shift, add_completed_session):
    await add_completed_session(employee, at(2026, 3, 2, 8, 0), at(2026, 3, 2, 18, 0))
    record = await AttendanceService(db).aggregate(employee.id, DAY)
    assert record.work_minutes == 600
    assert record.is_overtime is True
    assert record.overtime_minutes == 60


async def test_ninety_percent_day(db, employee, default_shift, add_completed_session):
    # 432 of 480 expected minutes
    await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 16, 12))
    record = await AttendanceService(db).aggregate(employee.id, DAY)
    assert record.work_minutes == 432
    assert record.attendance_percentage == 90
    assert record.status == DailyAttendanceStatus.PRESENT
    assert record.is_early_check_out is True


async def test_fallback_shift_when_nothing_configured(db, employee, add_completed_session):
    await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 17, 0))
    record = await AttendanceService(db).aggregate(employee.id, DAY)
    assert record.shift_type_id is None
    assert record.work_minutes == 480
    assert record.attendance_percentage == 100


async def test_nothing_to_derive_without_sessions_or_record(db, employee, default_shift):
    assert await AttendanceService(db).aggregate(employee.id, DAY) is None
    count = await db.scalar(select(func.count(DailyAttendance.id)))
    assert count == 0


async def test_aggregate_many_collapses_duplicates(db, employee, default_shift, add_completed_session):
    await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 17, 0))
    await add_completed_session(employee, at(2026, 3, 3, 9, 0), at(2026, 3, 3, 12, 0))
    service = AttendanceService(db)

    outcome = await service.aggregate_many([
        (employee.id, DAY),
        (employee.id, date(2026, 3, 3)),
        (employee.id, DAY),
        (employee.id, date(2026, 3, 4)),
    ])
    assert outcome == {"processed": 3, "failed": 0}

    records = (await db.scalars(
        select(DailyAttendance).where(DailyAttendance.user_id == employee.id).order_by(DailyAttendance.attendance_date)
    )).all()
    assert [r.attendance_date for r in records] == [DAY, date(2026, 3, 3)]


async def test_monthly_summary(db, employee, default_shift, add_completed_session):
    await add_completed_session(employee, at(2026, 3, 2, 9, 30), at(2026, 3, 2, 18, 30))
    await add_completed_session(employee, at(2026, 3, 3, 9, 0), at(2026, 3, 3, 12, 0))
    service = AttendanceService(db)
    await service.aggregate(employee.id, DAY)
    await service.aggregate(employee.id, date(2026, 3, 3))

    summary = await service.get_user_attendance_summary(employee.id, 3, 2026)
    assert summary.recorded_days == 2
    assert summary.present_days == 1
    assert summary.absent_days == 1
    assert summary.late_days == 1
    assert summary.total_work_minutes == 540 + 180
    assert summary.average_attendance_percentage == (100 + 38) / 2


async def test_shift_edit_does_not_rewrite_past_days(db, employee, make_user, default_shift, add_completed_session):
    old_shift_id = default_shift.id
    await add_completed_session(employee, at(2026, 3, 2, 9, 10), at(2026, 3, 2, 18, 0))
    service = AttendanceService(db)

    before = snapshot(await service.aggregate(employee.id, DAY))
    assert (before["is_late_check_in"], before["attendance_percentage"]) == (False, 100)
    assert before["shift_type_id"] == old_shift_id

    successor = await ShiftService(db).update_shift_type(
        old_shift_id, ShiftTypeUpdate(start_time=time(8, 0), end_time=time(20, 0)), 1
    )
    assert successor.id != old_shift_id
    assert successor.is_default is True
    assert successor.start_time == time(8, 0)

    old = await db.get(ShiftType, old_shift_id, populate_existing=True)
    assert old.is_active is False
    assert old.is_default is False
    assert old.superseded_by_id == successor.id

    # the recorded day is re-derived under the timing it was first computed with
    assert snapshot(await service.aggregate(employee.id, DAY)) == before

    # a day with no record yet picks up the new timing
    newcomer = await make_user()
    await add_completed_session(newcomer, at(2026, 3, 2, 9, 10), at(2026, 3, 2, 18, 0))
    fresh = await service.aggregate(newcomer.id, DAY)
    assert fresh.shift_type_id == successor.id
    assert fresh.is_late_check_in is True
    assert fresh.attendance_percentage == 80


async def test_recompute_locks_before_reading_sessions(db, employee, default_shift, add_completed_session, monkeypatch):
    await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 17, 0))
    calls = []
    for name in ("_lock_day", "_load_record", "_completed_sessions"):
        original = getattr(AttendanceService, name)

        def traced(self, *args, _original=original, _name=name, **kwargs):
            calls.append(_name)
            return _original(self, *args, **kwargs)

        monkeypatch.setattr(AttendanceService, name, traced)

    record = await AttendanceService(db).aggregate(employee.id, DAY)
    assert calls[:3] == ["_lock_day", "_load_record", "_completed_sessions"]
    assert record.work_minutes == 480


async def test_session_committed_elsewhere_is_seen(db, session_factory, employee, default_shift, add_completed_session):
    employee_id = employee.id
    await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 12, 0))
    assert (await AttendanceService(db).aggregate(employee_id, DAY)).work_minutes == 180

    await add_completed_session(employee, at(2026, 3, 2, 13, 0), at(2026, 3, 2, 17, 0))

    async with session_factory() as other:
        record = await AttendanceService(other).aggregate(employee_id, DAY)
    assert record.work_minutes == 180 + 240
