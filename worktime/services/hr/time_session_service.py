import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select, update

from worktime.core.exceptions import (
    AlreadyActiveError,
    BreakAlreadyOpenError,
    NoActiveSessionError,
    NoOpenBreakError,
    NotFoundError,
)
from worktime.core.locks import AggregationLockRegistry, aggregation_locks
from worktime.models.auth.user import User
from worktime.models.hr.time_session import TimeSession, TimeSessionBreak
from worktime.models.shared.enums import BreakEndSource, SessionClosedBy, TimeSessionSource, TimeSessionStatus
from worktime.schemas.auth.audit_schema import (
    AutoCloseAudit,
    BreakEndAudit,
    BreakSnapshot,
    BreakStartAudit,
    ClockInAudit,
    ClockOutAudit,
    SessionSnapshot,
)
from worktime.schemas.hr.time_session_schema import ActiveSessionResponse, TimeSessionResponse, WorkingUserResponse
from worktime.services.auth.audit_service import AuditService
from worktime.services.auth.user_service import UserService
from worktime.services.hr.attendance_service import AttendanceService
from worktime.utils.date_time import Clock, end_of_local_day, ensure_utc, local_date, minutes_between, utc_now

logger = logging.getLogger(__name__)

SYSTEM_CLOSE_NOTE = "[Auto-closed by System]"


def work_minutes_for(clock_in: datetime, clock_out: datetime, break_minutes: int) -> int:
    """Elapsed minutes less breaks, never negative."""
    return max(0, minutes_between(clock_in, clock_out) - break_minutes)


def append_note(notes: Optional[str], note: Optional[str]) -> Optional[str]:
    if not note:
        return notes
    return f"{notes}\n{note}" if notes else note


class TimeSessionService:
    """
    Live clock-in / break / clock-out lifecycle.
    Every transition commits together with its audit entry and, for clock-out, the day's
    aggregation; a failure rolls all of it back.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Optional[Clock] = None,
        request_context: Optional[Dict[str, Optional[str]]] = None,
        locks: AggregationLockRegistry = aggregation_locks,
    ):
        self.session = session
        self.clock = clock or utc_now
        self.locks = locks
        self.user_service = UserService(session)
        self.audit_service = AuditService(session, request_context)
        self.attendance_service = AttendanceService(session, locks=locks)

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    # region Loading

    async def get_session(self, session_id: int) -> Optional[TimeSession]:
        result = await self.session.execute(
            select(TimeSession)
            .where(TimeSession.id == session_id, TimeSession.is_deleted == False)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_session(self, user_id: int) -> Optional[TimeSession]:
        """The user's open session, whatever its date."""
        result = await self.session.execute(
            select(TimeSession)
            .where(
                TimeSession.user_id == user_id,
                TimeSession.status == TimeSessionStatus.ACTIVE,
                TimeSession.is_deleted == False,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require_active_session(self, user_id: int) -> TimeSession:
        active = await self.get_active_session(user_id)
        if active is None:
            raise NoActiveSessionError()
        return active

    # endregion

    # region Lifecycle

    async def clock_in(self, user_id: int, notes: Optional[str] = None) -> TimeSession:
        try:
            user = await self.user_service.get_user(user_id)
            if not user or not user.is_active:
                raise NotFoundError("User not found or inactive")

            if await self.get_active_session(user_id) is not None:
                raise AlreadyActiveError()

            now = self._now()
            time_session = TimeSession(
                user_id=user_id,
                session_date=local_date(now),
                clock_in=now,
                status=TimeSessionStatus.ACTIVE,
                source=TimeSessionSource.LIVE,
                total_work_minutes=0,
                total_break_minutes=0,
                notes=notes,
                created_by=user_id,
            )
            self.session.add(time_session)
            await self.session.flush()

            await self.audit_service.record(
                ClockInAudit(new_values=SessionSnapshot.of(time_session)),
                actor_id=user_id,
                affected_user_id=user_id,
                resource_id=time_session.id,
            )
            await self.session.commit()
            logger.info(f"🟢 User {user_id} clocked in (session {time_session.id})")
            return await self.get_session(time_session.id)

        except IntegrityError:
            # the partial unique index caught a concurrent clock-in
            await self.session.rollback()
            raise AlreadyActiveError()
        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error clocking in user {user_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error clocking in")

    async def start_break(self, user_id: int, reason: Optional[str] = None) -> TimeSession:
        try:
            time_session = await self._require_active_session(user_id)
            if time_session.open_break is not None:
                raise BreakAlreadyOpenError()

            brk = TimeSessionBreak(
                time_session_id=time_session.id,
                break_start=self._now(),
                reason=reason or "Unspecified",
                duration_minutes=0,
                created_by=user_id,
            )
            self.session.add(brk)
            await self.session.flush()

            await self.audit_service.record(
                BreakStartAudit(new_values=BreakSnapshot.of(brk)),
                actor_id=user_id,
                affected_user_id=user_id,
                resource_id=brk.id,
            )
            await self.session.commit()
            logger.info(f"☕ User {user_id} started a break (session {time_session.id})")
            return await self.get_session(time_session.id)

        except IntegrityError:
            await self.session.rollback()
            raise BreakAlreadyOpenError()
        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error starting break for user {user_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error starting break")

    async def end_break(self, user_id: int) -> TimeSession:
        try:
            time_session = await self._require_active_session(user_id)
            brk = time_session.open_break
            if brk is None:
                raise NoOpenBreakError()

            old_values = BreakSnapshot.of(brk)
            self._close_break(brk, self._now(), BreakEndSource.USER)
            brk.updated_by = user_id
            time_session.total_break_minutes = sum(b.duration_minutes or 0 for b in time_session.breaks)
            await self.session.flush()

            await self.audit_service.record(
                BreakEndAudit(old_values=old_values, new_values=BreakSnapshot.of(brk)),
                actor_id=user_id,
                affected_user_id=user_id,
                resource_id=brk.id,
            )
            await self.session.commit()
            logger.info(f"▶️ User {user_id} ended a break of {brk.duration_minutes}m")
            return await self.get_session(time_session.id)

        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error ending break for user {user_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error ending break")

    async def clock_out(self, user_id: int, note: Optional[str] = None) -> TimeSession:
        """
        Close the active session and aggregate its day before returning. Losing the race
        to the stuck-session sweep is not an error: the already-closed session is returned.
        """
        try:
            time_session = await self._require_active_session(user_id)
            async with self.locks.hold(time_session.user_id, time_session.session_date):
                closed = await self.close_session(
                    time_session,
                    clock_out_at=self._now(),
                    closed_by=SessionClosedBy.USER,
                    actor_id=user_id,
                    note=note,
                )
                if closed:
                    await self.session.commit()
                else:
                    await self.session.rollback()

            if closed:
                logger.info(f"🔴 User {user_id} clocked out (session {time_session.id})")
            else:
                logger.info(f"Session {time_session.id} was already closed, clock-out is a no-op")
            return await self.get_session(time_session.id)

        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error clocking out user {user_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error clocking out")

    async def force_close_session(self, session_id: int) -> bool:
        """
        Close a forgotten session at 23:59:59 of its own date. Used by the stuck-session
        sweep; commits on success. False when the session is gone or no longer active.
        """
        time_session = await self.get_session(session_id)
        if time_session is None or time_session.status != TimeSessionStatus.ACTIVE:
            return False

        cutoff = end_of_local_day(time_session.session_date)
        async with self.locks.hold(time_session.user_id, time_session.session_date):
            try:
                closed = await self.close_session(
                    time_session,
                    clock_out_at=cutoff,
                    closed_by=SessionClosedBy.SYSTEM,
                    actor_id=None,
                    note=SYSTEM_CLOSE_NOTE,
                )
                if closed:
                    await self.session.commit()
                else:
                    await self.session.rollback()
                return closed
            except Exception:
                await self.session.rollback()
                raise

    async def close_session(
        self,
        time_session: TimeSession,
        clock_out_at: datetime,
        closed_by: SessionClosedBy,
        actor_id: Optional[int],
        note: Optional[str] = None,
    ) -> bool:
        """
        ACTIVE -> COMPLETED as a guarded update, then re-aggregate the session's day.
        Caller holds the aggregation lock and owns the transaction. Returns False, with
        nothing written that the caller should keep, when the session was closed elsewhere.
        """
        system_close = closed_by == SessionClosedBy.SYSTEM
        break_source = BreakEndSource.SYSTEM_SWEEP if system_close else BreakEndSource.AUTO_CLOCK_OUT
        old_values = SessionSnapshot.of(time_session)

        # an open break is ended at the close time, marked so it is not mistaken for a user action
        for brk in time_session.breaks:
            if brk.break_end is None:
                self._close_break(brk, clock_out_at, break_source)

        clock_out_at = max(ensure_utc(clock_out_at), ensure_utc(time_session.clock_in))
        break_minutes = sum(b.duration_minutes or 0 for b in time_session.breaks)
        result = await self.session.execute(
            update(TimeSession)
            .where(
                TimeSession.id == time_session.id,
                TimeSession.status == TimeSessionStatus.ACTIVE,
            )
            .values(
                clock_out=clock_out_at,
                status=TimeSessionStatus.COMPLETED,
                closed_by=closed_by,
                total_break_minutes=break_minutes,
                total_work_minutes=work_minutes_for(time_session.clock_in, clock_out_at, break_minutes),
                notes=append_note(time_session.notes, note),
                updated_by=actor_id,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await self.session.refresh(time_session)
        await self.attendance_service.recompute(time_session.user_id, time_session.session_date)

        payload_cls = AutoCloseAudit if system_close else ClockOutAudit
        await self.audit_service.record(
            payload_cls(old_values=old_values, new_values=SessionSnapshot.of(time_session)),
            actor_id=actor_id,
            affected_user_id=time_session.user_id,
            resource_id=time_session.id,
        )
        return True

    @staticmethod
    def _close_break(brk: TimeSessionBreak, end: datetime, source: BreakEndSource) -> None:
        end = max(ensure_utc(end), ensure_utc(brk.break_start))
        brk.break_end = end
        brk.duration_minutes = minutes_between(brk.break_start, end)
        brk.end_source = source

    # endregion

    # region Queries

    def _live_counters(self, time_session: TimeSession) -> Dict[str, int]:
        now = self._now()
        break_minutes = 0
        for brk in time_session.breaks:
            if brk.break_end is None:
                break_minutes += max(0, minutes_between(brk.break_start, now))
            else:
                break_minutes += brk.duration_minutes or 0
        elapsed = max(0, minutes_between(time_session.clock_in, now))
        return {
            "elapsed_minutes": elapsed,
            "work_minutes": max(0, elapsed - break_minutes),
            "break_minutes": break_minutes,
        }

    async def get_active_status(self, user_id: int) -> Optional[ActiveSessionResponse]:
        time_session = await self.get_active_session(user_id)
        if time_session is None:
            return None
        return ActiveSessionResponse(
            session=TimeSessionResponse.model_validate(time_session),
            on_break=time_session.open_break is not None,
            **self._live_counters(time_session),
        )

    async def list_sessions(
        self,
        page_index: int = 1,
        page_size: int = 100,
        user_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        session_status: Optional[TimeSessionStatus] = None,
    ) -> Dict[str, Any]:
        """Get paginated time sessions with filtering"""
        try:
            conditions = [TimeSession.is_deleted == False]
            if user_id:
                conditions.append(TimeSession.user_id == user_id)
            if start_date:
                conditions.append(TimeSession.session_date >= start_date)
            if end_date:
                conditions.append(TimeSession.session_date <= end_date)
            if session_status:
                conditions.append(TimeSession.status == session_status)

            total_count = await self.session.scalar(
                select(func.count(TimeSession.id)).where(*conditions)
            )

            skip = (page_index - 1) * page_size
            sessions = await self.session.scalars(
                select(TimeSession)
                .where(*conditions)
                .order_by(TimeSession.clock_in.desc())
                .offset(skip)
                .limit(page_size)
            )

            return {
                "page_index": page_index,
                "page_size": page_size,
                "count": total_count or 0,
                "data": sessions.all(),
            }
        except Exception as e:
            logger.error(f"Error getting time sessions: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error getting time sessions")

    async def who_is_working(self) -> List[WorkingUserResponse]:
        result = await self.session.execute(
            select(TimeSession, User)
            .join(User, User.id == TimeSession.user_id)
            .where(
                TimeSession.status == TimeSessionStatus.ACTIVE,
                TimeSession.is_deleted == False,
            )
            .order_by(TimeSession.clock_in)
        )
        working = []
        for time_session, user in result.all():
            working.append(WorkingUserResponse(
                session_id=time_session.id,
                user_id=user.id,
                full_name=user.full_name,
                email=user.email,
                role=user.role.value if user.role else None,
                clock_in=time_session.clock_in,
                on_break=time_session.open_break is not None,
                **self._live_counters(time_session),
            ))
        return working

    # endregion
