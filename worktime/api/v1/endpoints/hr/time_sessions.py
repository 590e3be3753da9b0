from datetime import date
from fastapi import APIRouter, Depends, Query
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.api.dependencies import ensure_self_or_roles, get_audit_context, get_current_user, require_roles
from worktime.core.database import get_async_session
from worktime.models.auth.user import User
from worktime.models.shared.enums import TimeSessionStatus, UserRole
from worktime.schemas.common.pagination import PaginatedResponse
from worktime.schemas.hr.time_session_schema import (
    ActiveSessionResponse, BreakStartRequest, ClockInRequest, ClockOutRequest,
    TimeSessionResponse, WorkingUserResponse
)
from worktime.services.hr.time_session_service import TimeSessionService

router = APIRouter()

# region Lifecycle

@router.post("/clock-in", response_model=TimeSessionResponse)
async def clock_in(
    payload: Optional[ClockInRequest] = None,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user),
    context: Dict = Depends(get_audit_context)
):
    """Start a work session for the current user"""
    service = TimeSessionService(session, request_context=context)
    return await service.clock_in(current_user.id, notes=payload.notes if payload else None)

@router.post("/break-start", response_model=TimeSessionResponse)
async def start_break(
    payload: Optional[BreakStartRequest] = None,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user),
    context: Dict = Depends(get_audit_context)
):
    service = TimeSessionService(session, request_context=context)
    return await service.start_break(current_user.id, reason=payload.reason if payload else None)

@router.post("/break-end", response_model=TimeSessionResponse)
async def end_break(
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user),
    context: Dict = Depends(get_audit_context)
):
    service = TimeSessionService(session, request_context=context)
    return await service.end_break(current_user.id)

@router.post("/clock-out", response_model=TimeSessionResponse)
async def clock_out(
    payload: Optional[ClockOutRequest] = None,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user),
    context: Dict = Depends(get_audit_context)
):
    """End the current session; the day's attendance is up to date when this returns"""
    service = TimeSessionService(session, request_context=context)
    return await service.clock_out(current_user.id, note=payload.note if payload else None)

# endregion

# region Queries

@router.get("/active", response_model=Optional[ActiveSessionResponse])
async def get_active_session(
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    service = TimeSessionService(session)
    return await service.get_active_status(current_user.id)

@router.get("/sessions", response_model=PaginatedResponse[TimeSessionResponse])
async def get_sessions(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    user_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    session_status: Optional[TimeSessionStatus] = Query(None, alias="status"),
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    """List sessions; without a privileged role only the caller's own"""
    user_id = user_id or current_user.id
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN, UserRole.HR, UserRole.MANAGER)
    service = TimeSessionService(session)
    return await service.list_sessions(
        page_index=page_index,
        page_size=page_size,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        session_status=session_status
    )

@router.get("/who-is-working", response_model=List[WorkingUserResponse])
async def who_is_working(
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR))
):
    service = TimeSessionService(session)
    return await service.who_is_working()

# endregion
