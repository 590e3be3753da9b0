from fastapi import APIRouter, Depends, Query
from typing import Dict
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.api.dependencies import get_audit_context, require_roles
from worktime.core.database import get_async_session
from worktime.models.auth.user import User
from worktime.models.shared.enums import UserRole
from worktime.schemas.hr.manual_entry_schema import ManualSessionCreate, ManualSessionUpdate
from worktime.schemas.hr.time_session_schema import TimeSessionResponse
from worktime.services.hr.manual_entry_service import ManualEntryService

router = APIRouter()

@router.post("", response_model=TimeSessionResponse)
async def create_manual_entry(
    payload: ManualSessionCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    context: Dict = Depends(get_audit_context)
):
    """Backfill a completed session, e.g. a forgotten punch"""
    service = ManualEntryService(session, request_context=context)
    return await service.create_manual_session(payload, current_user.id)

@router.put("/{session_id}", response_model=TimeSessionResponse)
async def update_manual_entry(
    session_id: int,
    payload: ManualSessionUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    context: Dict = Depends(get_audit_context)
):
    service = ManualEntryService(session, request_context=context)
    return await service.update_manual_session(session_id, payload, current_user.id)

@router.delete("/{session_id}")
async def delete_manual_entry(
    session_id: int,
    reason: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
    context: Dict = Depends(get_audit_context)
):
    service = ManualEntryService(session, request_context=context)
    await service.delete_manual_session(session_id, reason, current_user.id)
    return {"message": "Time session deleted successfully"}
