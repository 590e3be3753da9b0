import calendar
import logging
from collections import OrderedDict, deque
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from worktime.core.locks import AggregationLockRegistry, aggregation_locks
from worktime.models.hr.daily_attendance import DailyAttendance
from worktime.models.hr.time_session import TimeSession
from worktime.models.shared.enums import DailyAttendanceStatus, TimeSessionStatus
from worktime.schemas.hr.attendance_schema import AttendanceMonthSummary
from worktime.schemas.hr.shift_schema import ShiftConfig
from worktime.services.hr.shift_service import ShiftService, to_shift_config
from worktime.utils.date_time import ensure_utc, local_date, shift_start_on, to_local

logger = logging.getLogger(__name__)

PRESENT_THRESHOLD = 90
HALF_DAY_THRESHOLD = 45


@dataclass(frozen=True)
class DailyMetrics:
    work_minutes: int
    break_minutes: int
    expected_work_minutes: int
    is_late_check_in: bool
    is_early_check_out: bool
    is_overtime: bool
    overtime_minutes: int
    attendance_percentage: int
    status: DailyAttendanceStatus


def attendance_percentage(work_minutes: int, expected_work_minutes: int) -> int:
    """work / expected as a whole percentage, half rounded up, capped at 100."""
    if expected_work_minutes <= 0:
        return 0
    # integer form of floor(work * 100 / expected + 0.5)
    percentage = (200 * work_minutes + expected_work_minutes) // (2 * expected_work_minutes)
    return max(0, min(100, percentage))


def attendance_status(percentage: int) -> DailyAttendanceStatus:
    if percentage >= PRESENT_THRESHOLD:
        return DailyAttendanceStatus.PRESENT
    if percentage >= HALF_DAY_THRESHOLD:
        return DailyAttendanceStatus.HALF_DAY
    return DailyAttendanceStatus.ABSENT


def compute_daily_metrics(sessions: Sequence[TimeSession], shift: ShiftConfig) -> DailyMetrics:
    """
    Derive the day's outcome from its completed sessions. Every total is re-summed from
    the session list, so the result depends only on the sessions and the shift.
    """
    ordered = sorted(sessions, key=lambda s: ensure_utc(s.clock_in))
    work_minutes = sum(s.total_work_minutes or 0 for s in ordered)
    break_minutes = sum(s.total_break_minutes or 0 for s in ordered)
    expected = shift.expected_work_minutes
    shift_minutes = shift.shift_duration_minutes

    is_late = False
    if ordered:
        first_clock_in = ordered[0].clock_in
        late_after = shift_start_on(local_date(first_clock_in), shift.start_time, shift.late_grace_minutes)
        is_late = to_local(first_clock_in) > late_after

    overtime_minutes = max(0, work_minutes - shift_minutes)
    percentage = attendance_percentage(work_minutes, expected)

    return DailyMetrics(
        work_minutes=work_minutes,
        break_minutes=break_minutes,
        expected_work_minutes=expected,
        is_late_check_in=is_late,
        is_early_check_out=work_minutes < expected,
        is_overtime=overtime_minutes > 0,
        overtime_minutes=overtime_minutes,
        attendance_percentage=percentage,
        status=attendance_status(percentage),
    )


def session_summaries(sessions: Iterable[TimeSession]) -> List[Dict[str, Any]]:
    summaries = []
    for s in sorted(sessions, key=lambda s: ensure_utc(s.clock_in)):
        summaries.append({
            "session_id": s.id,
            "clock_in": ensure_utc(s.clock_in).isoformat(),
            "clock_out": ensure_utc(s.clock_out).isoformat() if s.clock_out else None,
            "duration_minutes": s.total_work_minutes or 0,
            "break_minutes": s.total_break_minutes or 0,
            "source": s.source.value if s.source else None,
            "notes": s.notes,
        })
    return summaries


class AttendanceService:
    def __init__(self, session: AsyncSession, locks: AggregationLockRegistry = aggregation_locks):
        self.session = session
        self.locks = locks
        self.shift_service = ShiftService(session)

    # region Aggregation

    async def _completed_sessions(self, user_id: int, attendance_date: date) -> List[TimeSession]:
        result = await self.session.execute(
            select(TimeSession)
            .where(
                TimeSession.user_id == user_id,
                TimeSession.session_date == attendance_date,
                TimeSession.status == TimeSessionStatus.COMPLETED,
                TimeSession.is_deleted == False,
            )
            .order_by(TimeSession.clock_in, TimeSession.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _load_record(self, user_id: int, attendance_date: date, for_update: bool = False) -> Optional[DailyAttendance]:
        stmt = select(DailyAttendance).where(
            DailyAttendance.user_id == user_id,
            DailyAttendance.attendance_date == attendance_date,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def _lock_day(self, user_id: int, attendance_date: date) -> None:
        """
        Transaction-scoped database lock on (user, date) so writers in other processes queue
        before reading anything. PostgreSQL only; SQLite already admits a single writer.
        """
        if self.session.get_bind().dialect.name == "postgresql":
            await self.session.execute(select(func.pg_advisory_xact_lock(user_id, attendance_date.toordinal())))

    async def _shift_for(self, user_id: int, attendance_date: date, record: Optional[DailyAttendance]) -> ShiftConfig:
        # a derived day stays on the shift version it was first computed with
        if record is not None and record.shift_type_id is not None:
            pinned = await self.shift_service.get_shift_type(record.shift_type_id)
            if pinned is not None:
                return to_shift_config(pinned)
        return await self.shift_service.resolve_shift_or_fallback(user_id, attendance_date)

    async def recompute(self, user_id: int, attendance_date: date) -> Optional[DailyAttendance]:
        """
        Re-derive the (user, date) record inside the caller's transaction. The caller holds
        the aggregation lock and commits. Returns None when there is nothing to derive:
        no completed sessions and no record yet.
        """
        # lock first, then read: a writer that waited must see what the previous one committed
        await self._lock_day(user_id, attendance_date)
        record = await self._load_record(user_id, attendance_date, for_update=True)
        sessions = await self._completed_sessions(user_id, attendance_date)
        if record is None and not sessions:
            return None

        shift = await self._shift_for(user_id, attendance_date, record)
        metrics = compute_daily_metrics(sessions, shift)

        if record is None:
            record = DailyAttendance(user_id=user_id, attendance_date=attendance_date)
            self._apply(record, sessions, shift, metrics)
            try:
                async with self.session.begin_nested():
                    self.session.add(record)
            except IntegrityError:
                # Another process inserted the row first; update it instead
                logger.info(f"Attendance row for user {user_id} on {attendance_date} appeared concurrently, updating")
                record = await self._load_record(user_id, attendance_date, for_update=True)
                self._apply(record, sessions, shift, metrics)
        else:
            self._apply(record, sessions, shift, metrics)

        await self.session.flush()
        logger.debug(
            f"Aggregated user {user_id} on {attendance_date}: {metrics.work_minutes}m, "
            f"{metrics.attendance_percentage}% {metrics.status.value}"
        )
        return record

    @staticmethod
    def _apply(record: DailyAttendance, sessions, shift: ShiftConfig, metrics: DailyMetrics) -> None:
        record.shift_type_id = shift.shift_type_id
        record.sessions = session_summaries(sessions)
        record.work_minutes = metrics.work_minutes
        record.break_minutes = metrics.break_minutes
        record.is_late_check_in = metrics.is_late_check_in
        record.is_early_check_out = metrics.is_early_check_out
        record.is_overtime = metrics.is_overtime
        record.overtime_minutes = metrics.overtime_minutes
        record.attendance_percentage = metrics.attendance_percentage
        record.status = metrics.status
        if sessions:
            # a system absence remark no longer applies once time is recorded
            record.remarks = None

    async def aggregate(self, user_id: int, attendance_date: date) -> Optional[DailyAttendance]:
        """Serialized, committed recompute for one (user, date)."""
        try:
            async with self.locks.hold(user_id, attendance_date):
                record = await self.recompute(user_id, attendance_date)
                await self.session.commit()
            return record
        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error aggregating attendance for user {user_id} on {attendance_date}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error aggregating attendance")

    async def aggregate_many(self, pairs: Iterable[Tuple[int, date]]) -> Dict[str, int]:
        """
        Drain a worklist of (user, date) pairs. Duplicates collapse to one unit, each unit
        commits on its own and a failing unit does not stop the rest.
        """
        worklist = deque(OrderedDict.fromkeys(pairs))
        processed = failed = 0
        while worklist:
            user_id, attendance_date = worklist.popleft()
            try:
                await self.aggregate(user_id, attendance_date)
                processed += 1
            except HTTPException as e:
                failed += 1
                logger.error(f"❌ Re-aggregation failed for user {user_id} on {attendance_date}: {e.detail}")
        return {"processed": processed, "failed": failed}

    # endregion

    # region Queries

    async def get_daily_record(self, user_id: int, attendance_date: date) -> Optional[DailyAttendance]:
        result = await self.session.execute(
            select(DailyAttendance).where(
                DailyAttendance.user_id == user_id,
                DailyAttendance.attendance_date == attendance_date,
                DailyAttendance.is_deleted == False,
            )
        )
        return result.scalar_one_or_none()

    async def get_attendance(
        self,
        page_index: int = 1,
        page_size: int = 100,
        user_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status_filter: Optional[DailyAttendanceStatus] = None,
    ) -> Dict[str, Any]:
        """Get paginated daily attendance records with filtering"""
        try:
            conditions = [DailyAttendance.is_deleted == False]
            if user_id:
                conditions.append(DailyAttendance.user_id == user_id)
            if start_date:
                conditions.append(DailyAttendance.attendance_date >= start_date)
            if end_date:
                conditions.append(DailyAttendance.attendance_date <= end_date)
            if status_filter:
                conditions.append(DailyAttendance.status == status_filter)

            total_count = await self.session.scalar(
                select(func.count(DailyAttendance.id)).where(*conditions)
            )

            skip = (page_index - 1) * page_size
            records = await self.session.scalars(
                select(DailyAttendance)
                .where(*conditions)
                .order_by(DailyAttendance.attendance_date.desc(), DailyAttendance.user_id)
                .offset(skip)
                .limit(page_size)
            )

            return {
                "page_index": page_index,
                "page_size": page_size,
                "count": total_count or 0,
                "data": records.all(),
            }
        except Exception as e:
            logger.error(f"Error getting attendance records: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error getting attendance records")

    async def get_user_attendance_summary(self, user_id: int, month: int, year: int) -> AttendanceMonthSummary:
        if not 1 <= month <= 12:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Month must be between 1 and 12")
        _, last_day = calendar.monthrange(year, month)

        result = await self.session.execute(
            select(DailyAttendance).where(
                DailyAttendance.user_id == user_id,
                DailyAttendance.attendance_date >= date(year, month, 1),
                DailyAttendance.attendance_date <= date(year, month, last_day),
                DailyAttendance.is_deleted == False,
            )
        )
        records = result.scalars().all()

        def count(predicate) -> int:
            return sum(1 for r in records if predicate(r))

        average = (
            round(sum(r.attendance_percentage or 0 for r in records) / len(records), 2) if records else 0.0
        )
        return AttendanceMonthSummary(
            user_id=user_id,
            month=month,
            year=year,
            recorded_days=len(records),
            present_days=count(lambda r: r.status == DailyAttendanceStatus.PRESENT),
            half_days=count(lambda r: r.status == DailyAttendanceStatus.HALF_DAY),
            absent_days=count(lambda r: r.status == DailyAttendanceStatus.ABSENT),
            late_days=count(lambda r: r.is_late_check_in),
            early_check_out_days=count(lambda r: r.is_early_check_out),
            overtime_days=count(lambda r: r.is_overtime),
            total_work_minutes=sum(r.work_minutes or 0 for r in records),
            total_break_minutes=sum(r.break_minutes or 0 for r in records),
            total_overtime_minutes=sum(r.overtime_minutes or 0 for r in records),
            average_attendance_percentage=average,
        )

    # endregion
