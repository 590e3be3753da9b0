from fastapi import APIRouter, Depends, Query
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.api.dependencies import require_roles
from worktime.core.database import get_async_session
from worktime.models.auth.user import User
from worktime.models.shared.enums import AuditAction, UserRole
from worktime.schemas.auth.audit_schema import AuditLogPage
from worktime.services.auth.audit_service import AuditService

router = APIRouter()

@router.get("", response_model=AuditLogPage)
async def get_audit_logs(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    action: Optional[AuditAction] = Query(None),
    actor_id: Optional[int] = Query(None),
    affected_user_id: Optional[int] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    """Audit trail, newest first"""
    service = AuditService(session)
    return await service.list_logs(
        page_index=page_index,
        page_size=page_size,
        action=action,
        actor_id=actor_id,
        affected_user_id=affected_user_id
    )
