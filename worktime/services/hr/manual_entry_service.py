import logging
from contextlib import nullcontext
from datetime import datetime
from typing import Dict, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from worktime.core.config import settings
from worktime.core.exceptions import DuplicateSessionError, NotFoundError, ValidationError
from worktime.core.locks import AggregationLockRegistry, aggregation_locks
from worktime.models.hr.time_session import TimeSession
from worktime.models.shared.enums import TimeSessionSource, TimeSessionStatus
from worktime.schemas.auth.audit_schema import (
    ManualEntryCreateAudit,
    ManualEntryDeleteAudit,
    ManualEntryUpdateAudit,
    SessionSnapshot,
)
from worktime.schemas.hr.manual_entry_schema import ManualSessionCreate, ManualSessionUpdate
from worktime.services.auth.audit_service import AuditService
from worktime.services.auth.user_service import UserService
from worktime.services.hr.attendance_service import AttendanceService
from worktime.utils.date_time import ensure_utc, minutes_between

logger = logging.getLogger(__name__)


class ManualEntryService:
    """
    Privileged backfill of completed sessions. Role checks happen in the API layer.
    With MANUAL_ENTRY_REAGGREGATE on, the day's attendance is recomputed in the same
    transaction as the edit and its audit entry.
    """

    def __init__(
        self,
        session: AsyncSession,
        request_context: Optional[Dict[str, Optional[str]]] = None,
        reaggregate: Optional[bool] = None,
        locks: AggregationLockRegistry = aggregation_locks,
    ):
        self.session = session
        self.reaggregate = settings.MANUAL_ENTRY_REAGGREGATE if reaggregate is None else reaggregate
        self.locks = locks
        self.user_service = UserService(session)
        self.audit_service = AuditService(session, request_context)
        self.attendance_service = AttendanceService(session, locks=locks)

    def _day_lock(self, user_id, session_date):
        if self.reaggregate:
            return self.locks.hold(user_id, session_date)
        return nullcontext()

    @staticmethod
    def _validate_times(clock_in: datetime, clock_out: datetime):
        if ensure_utc(clock_out) <= ensure_utc(clock_in):
            raise ValidationError("Clock-out must be after clock-in")

    async def _get_session(self, session_id: int) -> TimeSession:
        result = await self.session.execute(
            select(TimeSession)
            .where(TimeSession.id == session_id, TimeSession.is_deleted == False)
            .execution_options(populate_existing=True)
        )
        time_session = result.scalar_one_or_none()
        if not time_session:
            raise NotFoundError("Time session not found")
        return time_session

    async def create_manual_session(self, data: ManualSessionCreate, current_user_id: int) -> TimeSession:
        try:
            self._validate_times(data.clock_in, data.clock_out)

            user = await self.user_service.get_user(data.user_id)
            if not user:
                raise NotFoundError(f"User with ID {data.user_id} not found")

            async with self._day_lock(data.user_id, data.session_date):
                existing = await self.session.scalar(
                    select(TimeSession.id).where(
                        TimeSession.user_id == data.user_id,
                        TimeSession.session_date == data.session_date,
                        TimeSession.is_deleted == False,
                    ).limit(1)
                )
                if existing is not None:
                    raise DuplicateSessionError()

                time_session = TimeSession(
                    user_id=data.user_id,
                    session_date=data.session_date,
                    clock_in=ensure_utc(data.clock_in),
                    clock_out=ensure_utc(data.clock_out),
                    status=TimeSessionStatus.COMPLETED,
                    source=TimeSessionSource.MANUAL,
                    total_work_minutes=minutes_between(data.clock_in, data.clock_out),
                    total_break_minutes=0,
                    notes=data.notes,
                    created_by=current_user_id,
                )
                self.session.add(time_session)
                await self.session.flush()

                await self.audit_service.record(
                    ManualEntryCreateAudit(new_values=SessionSnapshot.of(time_session)),
                    actor_id=current_user_id,
                    affected_user_id=data.user_id,
                    resource_id=time_session.id,
                    reason=data.reason,
                )
                if self.reaggregate:
                    await self.attendance_service.recompute(data.user_id, data.session_date)
                await self.session.commit()

            logger.info(
                f"✍️ Manual session {time_session.id} created for user {data.user_id} on {data.session_date} "
                f"by user {current_user_id}"
            )
            return await self._get_session(time_session.id)

        except IntegrityError:
            await self.session.rollback()
            raise DuplicateSessionError()
        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating manual session: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating manual session")

    async def update_manual_session(self, session_id: int, data: ManualSessionUpdate, current_user_id: int) -> TimeSession:
        try:
            time_session = await self._get_session(session_id)
            if time_session.status != TimeSessionStatus.COMPLETED:
                raise ValidationError("Only completed sessions can be edited; active sessions end through clock-out")

            async with self._day_lock(time_session.user_id, time_session.session_date):
                old_values = SessionSnapshot.of(time_session)

                clock_in = ensure_utc(data.clock_in) if data.clock_in else ensure_utc(time_session.clock_in)
                clock_out = ensure_utc(data.clock_out) if data.clock_out else ensure_utc(time_session.clock_out)
                self._validate_times(clock_in, clock_out)

                time_session.clock_in = clock_in
                time_session.clock_out = clock_out
                # breaks are kept as recorded
                time_session.total_work_minutes = max(
                    0, minutes_between(clock_in, clock_out) - (time_session.total_break_minutes or 0)
                )
                if data.notes is not None:
                    time_session.notes = data.notes
                time_session.updated_by = current_user_id
                await self.session.flush()

                await self.audit_service.record(
                    ManualEntryUpdateAudit(old_values=old_values, new_values=SessionSnapshot.of(time_session)),
                    actor_id=current_user_id,
                    affected_user_id=time_session.user_id,
                    resource_id=time_session.id,
                    reason=data.reason,
                )
                if self.reaggregate:
                    await self.attendance_service.recompute(time_session.user_id, time_session.session_date)
                await self.session.commit()

            logger.info(f"✍️ Session {session_id} updated manually by user {current_user_id}")
            return await self._get_session(session_id)

        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error updating session {session_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error updating session")

    async def delete_manual_session(self, session_id: int, reason: str, current_user_id: int) -> bool:
        try:
            if not reason or not reason.strip():
                raise ValidationError("A reason is required for manual entries")

            time_session = await self._get_session(session_id)
            user_id, session_date = time_session.user_id, time_session.session_date

            async with self._day_lock(user_id, session_date):
                old_values = SessionSnapshot.of(time_session)
                await self.session.delete(time_session)
                await self.session.flush()

                await self.audit_service.record(
                    ManualEntryDeleteAudit(old_values=old_values),
                    actor_id=current_user_id,
                    affected_user_id=user_id,
                    resource_id=session_id,
                    reason=reason.strip(),
                )
                if self.reaggregate:
                    await self.attendance_service.recompute(user_id, session_date)
                await self.session.commit()

            logger.info(f"🗑️ Session {session_id} deleted by user {current_user_id}")
            return True

        except HTTPException:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error deleting session {session_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error deleting session")
