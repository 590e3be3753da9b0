import logging
import time
from datetime import date
from typing import Callable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from worktime.core.config import settings
from worktime.core.locks import AggregationLockRegistry, aggregation_locks
from worktime.core.request_context import SYSTEM_CONTEXT
from worktime.models.hr.daily_attendance import DailyAttendance
from worktime.models.hr.time_session import TimeSession
from worktime.models.shared.enums import DailyAttendanceStatus, SweepJob, TimeSessionStatus
from worktime.schemas.hr.sweep_schema import SweepError, SweepResult
from worktime.services.auth.user_service import UserService
from worktime.services.hr.shift_service import ShiftService
from worktime.services.hr.time_session_service import TimeSessionService
from worktime.utils.date_time import Clock, local_date, utc_now

logger = logging.getLogger(__name__)

ABSENCE_REMARK = "Auto-marked as Absent by System"


class RecoveryService:
    """
    The two unattended jobs. Each unit (one user, one session) runs in its own database
    session and commits on its own, so an interrupted run leaves only finished units
    behind and the next run picks up the rest.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        clock: Optional[Clock] = None,
        time_budget_seconds: Optional[float] = None,
        absence_roles: Optional[Sequence[str]] = None,
        locks: AggregationLockRegistry = aggregation_locks,
    ):
        self.session_factory = session_factory
        self.clock = clock or utc_now
        self.time_budget_seconds = (
            settings.SWEEP_TIME_BUDGET_SECONDS if time_budget_seconds is None else time_budget_seconds
        )
        self.absence_roles = list(absence_roles or settings.ABSENCE_SWEEP_ROLES)
        self.locks = locks

    def _deadline(self) -> float:
        return time.monotonic() + self.time_budget_seconds

    # region Absence sweep

    async def run_absence_sweep(self, run_date: Optional[date] = None) -> SweepResult:
        """Mark users with no record and no session on run_date as absent."""
        run_date = run_date or local_date(self.clock())
        result = SweepResult(job=SweepJob.ABSENCE, run_date=run_date)
        logger.info(f"🔍 Absence sweep started for {run_date}")

        async with self.session_factory() as db:
            user_ids = await UserService(db).get_active_user_ids_by_roles(self.absence_roles)
        result.candidates = len(user_ids)

        deadline = self._deadline()
        for user_id in user_ids:
            if time.monotonic() > deadline:
                result.timed_out = True
                logger.warning(f"⏱️ Absence sweep for {run_date} ran out of time, remaining users left for the next run")
                break
            try:
                async with self.session_factory() as db:
                    created = await self._mark_absent(db, user_id, run_date)
                if created:
                    result.processed += 1
                else:
                    result.skipped += 1
            except Exception as e:
                result.failed += 1
                result.errors.append(SweepError(unit=f"user:{user_id}", error=str(e)))
                logger.error(f"❌ Absence sweep failed for user {user_id} on {run_date}: {e}")

        result.message = (
            f"Marked {result.processed} absent, skipped {result.skipped}, failed {result.failed}"
        )
        logger.info(f"✅ Absence sweep for {run_date}: {result.message}")
        return result

    async def _mark_absent(self, db: AsyncSession, user_id: int, run_date: date) -> bool:
        async with self.locks.hold(user_id, run_date):
            existing = await db.scalar(
                select(DailyAttendance.id).where(
                    DailyAttendance.user_id == user_id,
                    DailyAttendance.attendance_date == run_date,
                ).limit(1)
            )
            if existing is not None:
                return False

            # any session, open or closed, means the user showed up
            has_session = await db.scalar(
                select(TimeSession.id).where(
                    TimeSession.user_id == user_id,
                    TimeSession.session_date == run_date,
                    TimeSession.is_deleted == False,
                ).limit(1)
            )
            if has_session is not None:
                return False

            shift = await ShiftService(db).resolve_shift_or_fallback(user_id, run_date)
            db.add(DailyAttendance(
                user_id=user_id,
                attendance_date=run_date,
                shift_type_id=shift.shift_type_id,
                sessions=[],
                work_minutes=0,
                break_minutes=0,
                is_late_check_in=False,
                is_early_check_out=False,
                is_overtime=False,
                overtime_minutes=0,
                attendance_percentage=0,
                status=DailyAttendanceStatus.ABSENT,
                remarks=ABSENCE_REMARK,
            ))
            try:
                await db.commit()
            except IntegrityError:
                # another writer created the record first
                await db.rollback()
                return False
            return True

    # endregion

    # region Stuck-session sweep

    async def run_stuck_session_sweep(self, run_date: Optional[date] = None) -> SweepResult:
        """Force-close every session still open on or before run_date."""
        run_date = run_date or local_date(self.clock())
        result = SweepResult(job=SweepJob.STUCK_SESSIONS, run_date=run_date)
        logger.info(f"🔍 Stuck-session sweep started for sessions up to {run_date}")

        async with self.session_factory() as db:
            session_ids: List[int] = list((await db.scalars(
                select(TimeSession.id)
                .where(
                    TimeSession.status == TimeSessionStatus.ACTIVE,
                    TimeSession.clock_out.is_(None),
                    TimeSession.session_date <= run_date,
                    TimeSession.is_deleted == False,
                )
                .order_by(TimeSession.session_date, TimeSession.id)
            )).all())
        result.candidates = len(session_ids)

        deadline = self._deadline()
        for session_id in session_ids:
            if time.monotonic() > deadline:
                result.timed_out = True
                logger.warning("⏱️ Stuck-session sweep ran out of time, remaining sessions left for the next run")
                break
            try:
                async with self.session_factory() as db:
                    service = TimeSessionService(
                        db, clock=self.clock, request_context=SYSTEM_CONTEXT, locks=self.locks
                    )
                    closed = await service.force_close_session(session_id)
                if closed:
                    result.processed += 1
                    result.reaggregated += 1
                else:
                    # closed by the user between listing and processing
                    result.skipped += 1
            except Exception as e:
                result.failed += 1
                result.errors.append(SweepError(unit=f"session:{session_id}", error=str(e)))
                logger.error(f"❌ Stuck-session sweep failed for session {session_id}: {e}")

        result.message = (
            f"Closed {result.processed} sessions, skipped {result.skipped}, failed {result.failed}"
        )
        logger.info(f"✅ Stuck-session sweep for {run_date}: {result.message}")
        return result

    # endregion
