from datetime import date
from fastapi import APIRouter, Depends, Query
from typing import Callable, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.api.dependencies import ensure_self_or_roles, get_current_user, get_session_factory, require_roles
from worktime.core.database import get_async_session
from worktime.core.exceptions import NotFoundError
from worktime.models.auth.user import User
from worktime.models.shared.enums import DailyAttendanceStatus, UserRole
from worktime.schemas.common.pagination import PaginatedResponse
from worktime.schemas.hr.attendance_schema import (
    AttendanceMonthSummary, DailyAttendanceResponse, RecomputeRequest
)
from worktime.schemas.hr.sweep_schema import SweepResult
from worktime.services.hr.attendance_service import AttendanceService
from worktime.services.hr.recovery_service import RecoveryService

router = APIRouter()

PRIVILEGED = (UserRole.ADMIN, UserRole.HR, UserRole.MANAGER)

@router.get("/daily/{user_id}/{attendance_date}", response_model=DailyAttendanceResponse)
async def get_daily_attendance(
    user_id: int,
    attendance_date: date,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    """Get the derived attendance record of one user for one day"""
    ensure_self_or_roles(current_user, user_id, *PRIVILEGED)
    service = AttendanceService(session)
    record = await service.get_daily_record(user_id, attendance_date)
    if not record:
        raise NotFoundError("Attendance record not found")
    return record

@router.get("/", response_model=PaginatedResponse[DailyAttendanceResponse])
async def get_attendance(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    user_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status: Optional[DailyAttendanceStatus] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    """Get daily attendance records with pagination and filtering"""
    if current_user.role not in PRIVILEGED:
        user_id = current_user.id
    service = AttendanceService(session)
    return await service.get_attendance(
        page_index=page_index,
        page_size=page_size,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        status_filter=status
    )

@router.get("/user/{user_id}/summary", response_model=AttendanceMonthSummary)
async def get_user_attendance_summary(
    user_id: int,
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000, le=2100),
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    """Monthly totals for one user"""
    ensure_self_or_roles(current_user, user_id, *PRIVILEGED)
    service = AttendanceService(session)
    return await service.get_user_attendance_summary(user_id, month, year)

@router.post("/recompute")
async def recompute_attendance(
    payload: RecomputeRequest,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR))
):
    """Re-derive records for a user over a date range"""
    end_date = payload.end_date or payload.start_date
    days = (end_date - payload.start_date).days + 1
    pairs = [(payload.user_id, date.fromordinal(payload.start_date.toordinal() + i)) for i in range(days)]
    service = AttendanceService(session)
    return await service.aggregate_many(pairs)

# region Sweeps

@router.post("/sweeps/absence", response_model=SweepResult)
async def run_absence_sweep(
    run_date: Optional[date] = Query(None),
    session_factory: Callable = Depends(get_session_factory),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Run the absence sweep now instead of waiting for the schedule"""
    return await RecoveryService(session_factory).run_absence_sweep(run_date)

@router.post("/sweeps/stuck-sessions", response_model=SweepResult)
async def run_stuck_session_sweep(
    run_date: Optional[date] = Query(None),
    session_factory: Callable = Depends(get_session_factory),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    return await RecoveryService(session_factory).run_stuck_session_sweep(run_date)

# endregion
