from datetime import date

import pytest
from sqlalchemy import func, select

from worktime.core.exceptions import DuplicateSessionError, NotFoundError, ValidationError
from worktime.models.auth.audit_log import AuditLog, AuditLogImmutableError
from worktime.models.hr.daily_attendance import DailyAttendance
from worktime.models.hr.time_session import TimeSession
from worktime.models.shared.enums import AuditAction, DailyAttendanceStatus, TimeSessionSource, TimeSessionStatus, UserRole
from worktime.schemas.hr.manual_entry_schema import ManualSessionCreate, ManualSessionUpdate
from worktime.services.auth.audit_service import AuditService
from worktime.services.hr.manual_entry_service import ManualEntryService
from worktime.services.hr.time_session_service import TimeSessionService
from tests.helpers import FakeClock, at

DAY = date(2026, 3, 2)


@pytest.fixture
async def employee(make_user):
    return await make_user()


@pytest.fixture
async def admin(make_user):
    return await make_user(role=UserRole.ADMIN)


@pytest.fixture
def service(db):
    return ManualEntryService(db, request_context={"ip_address": "192.168.1.4", "endpoint": "POST /api/v1/manual-entries"})


def backfill(user, clock_in=at(2026, 3, 2, 9, 0), clock_out=at(2026, 3, 2, 17, 30), reason="Forgot to punch in"):
    return ManualSessionCreate(user_id=user.id, session_date=DAY, clock_in=clock_in, clock_out=clock_out, reason=reason)


async def audit_entries(db, action):
    return (await db.scalars(select(AuditLog).where(AuditLog.action == action))).all()


class TestCreate:
    async def test_creates_completed_manual_session(self, service, db, employee, admin, default_shift):
        time_session = await service.create_manual_session(backfill(employee), admin.id)

        assert time_session.status == TimeSessionStatus.COMPLETED
        assert time_session.source == TimeSessionSource.MANUAL
        assert time_session.total_work_minutes == 510
        assert time_session.total_break_minutes == 0

        entries = await audit_entries(db, AuditAction.MANUAL_ENTRY_CREATE)
        assert len(entries) == 1
        assert entries[0].user_id == admin.id
        assert entries[0].affected_user_id == employee.id
        assert entries[0].reason == "Forgot to punch in"
        assert entries[0].old_values is None
        assert entries[0].new_values["total_work_minutes"] == 510
        assert entries[0].ip_address == "192.168.1.4"

        record = await db.scalar(select(DailyAttendance).where(DailyAttendance.user_id == employee.id))
        assert record.work_minutes == 510
        assert record.status == DailyAttendanceStatus.PRESENT

    async def test_clock_out_must_follow_clock_in(self, service, db, employee, admin):
        with pytest.raises(ValidationError):
            await service.create_manual_session(backfill(employee, clock_out=at(2026, 3, 2, 9, 0)), admin.id)
        assert await db.scalar(select(func.count(TimeSession.id))) == 0
        assert await db.scalar(select(func.count(AuditLog.id))) == 0

    async def test_one_session_per_date(self, service, db, employee, admin):
        await service.create_manual_session(backfill(employee), admin.id)
        with pytest.raises(DuplicateSessionError):
            await service.create_manual_session(
                backfill(employee, clock_in=at(2026, 3, 2, 18, 0), clock_out=at(2026, 3, 2, 19, 0)), admin.id
            )
        assert len(await audit_entries(db, AuditAction.MANUAL_ENTRY_CREATE)) == 1

    async def test_live_session_blocks_backfill_of_same_date(self, service, db, employee, admin):
        await TimeSessionService(db, clock=FakeClock(at(2026, 3, 2, 8, 0))).clock_in(employee.id)
        with pytest.raises(DuplicateSessionError):
            await service.create_manual_session(backfill(employee), admin.id)

    async def test_unknown_user(self, service, admin):
        data = ManualSessionCreate(
            user_id=4040, session_date=DAY, clock_in=at(2026, 3, 2, 9, 0), clock_out=at(2026, 3, 2, 17, 0), reason="backfill"
        )
        with pytest.raises(NotFoundError):
            await service.create_manual_session(data, admin.id)

    async def test_without_reaggregation(self, db, employee, admin):
        service = ManualEntryService(db, reaggregate=False)
        await service.create_manual_session(backfill(employee), admin.id)
        assert await db.scalar(select(func.count(DailyAttendance.id))) == 0


class TestUpdate:
    async def test_keeps_breaks_and_records_both_snapshots(self, service, db, employee, admin, add_completed_session, default_shift):
        original = await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 17, 0), break_minutes=30)

        updated = await service.update_manual_session(
            original.id,
            ManualSessionUpdate(clock_out=at(2026, 3, 2, 18, 0), reason="Stayed for the release"),
            admin.id,
        )
        assert updated.total_break_minutes == 30
        assert updated.total_work_minutes == 540 - 30

        entry = (await audit_entries(db, AuditAction.MANUAL_ENTRY_UPDATE))[0]
        assert entry.old_values["total_work_minutes"] == 450
        assert entry.new_values["total_work_minutes"] == 510
        assert entry.reason == "Stayed for the release"

        page = await AuditService(db).list_logs(action=AuditAction.MANUAL_ENTRY_UPDATE)
        payload = page["data"][0].payload
        assert payload.old_values.total_work_minutes == 450
        assert payload.new_values.total_work_minutes == 510

        record = await db.scalar(select(DailyAttendance).where(DailyAttendance.user_id == employee.id))
        assert record.work_minutes == 510

    async def test_rejects_inverted_times(self, service, employee, admin, add_completed_session):
        original = await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 17, 0))
        with pytest.raises(ValidationError):
            await service.update_manual_session(
                original.id, ManualSessionUpdate(clock_in=at(2026, 3, 2, 17, 30), reason="typo"), admin.id
            )

    async def test_active_sessions_are_not_editable(self, service, db, employee, admin):
        active = await TimeSessionService(db, clock=FakeClock(at(2026, 3, 2, 8, 0))).clock_in(employee.id)
        with pytest.raises(ValidationError):
            await service.update_manual_session(
                active.id, ManualSessionUpdate(clock_out=at(2026, 3, 2, 12, 0), reason="close it"), admin.id
            )

    async def test_missing_session(self, service, admin):
        with pytest.raises(NotFoundError):
            await service.update_manual_session(999, ManualSessionUpdate(reason="nothing"), admin.id)


class TestDelete:
    async def test_hard_delete_with_old_snapshot(self, service, db, employee, admin, add_completed_session, default_shift):
        user_id, admin_id = employee.id, admin.id
        original = await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 17, 0))
        original_id = original.id
        await service.update_manual_session(original_id, ManualSessionUpdate(notes="checked", reason="review"), admin_id)

        assert await service.delete_manual_session(original_id, "Duplicate entry", admin_id) is True

        assert await db.scalar(select(func.count(TimeSession.id))) == 0
        entry = (await audit_entries(db, AuditAction.MANUAL_ENTRY_DELETE))[0]
        assert entry.resource_id == original_id
        assert entry.new_values is None
        assert entry.old_values["notes"] == "checked"

        db.expire_all()
        record = await db.scalar(select(DailyAttendance).where(DailyAttendance.user_id == user_id))
        assert record.work_minutes == 0
        assert record.status == DailyAttendanceStatus.ABSENT

    async def test_reason_required(self, service, employee, admin, add_completed_session):
        original = await add_completed_session(employee, at(2026, 3, 2, 9, 0), at(2026, 3, 2, 17, 0))
        with pytest.raises(ValidationError):
            await service.delete_manual_session(original.id, "  ", admin.id)


class TestAuditTrail:
    async def test_entries_are_append_only(self, service, db, employee, admin):
        await service.create_manual_session(backfill(employee), admin.id)
        entry = (await audit_entries(db, AuditAction.MANUAL_ENTRY_CREATE))[0]
        entry_id = entry.id

        entry.reason = "rewritten history"
        with pytest.raises(AuditLogImmutableError):
            await db.flush()
        await db.rollback()

        await db.delete(await db.get(AuditLog, entry_id))
        with pytest.raises(AuditLogImmutableError):
            await db.flush()
        await db.rollback()

    async def test_filters(self, service, db, employee, admin, make_user):
        other = await make_user()
        await service.create_manual_session(backfill(employee), admin.id)
        await service.create_manual_session(backfill(other), admin.id)

        page = await AuditService(db).list_logs(affected_user_id=other.id)
        assert page["count"] == 1
        assert page["data"][0].affected_user_id == other.id
        assert page["data"][0].resource == "TimeSession"
