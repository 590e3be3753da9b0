import logging
from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from worktime.models.auth.audit_log import AuditLog
from worktime.models.shared.enums import AuditAction
from worktime.schemas.auth.audit_schema import AUDIT_RESOURCES, AuditLogResponse, audit_payload_adapter

logger = logging.getLogger(__name__)


class AuditService:
    """Append-only audit trail. record() joins the caller's transaction; it never commits."""

    def __init__(self, session: AsyncSession, request_context: Optional[Dict[str, Optional[str]]] = None):
        self.session = session
        self.request_context = request_context or {}

    async def record(
        self,
        payload,
        actor_id: Optional[int],
        affected_user_id: Optional[int],
        resource_id: Optional[int],
        reason: Optional[str] = None,
    ) -> AuditLog:
        # Round-trip through the union so malformed snapshots fail before they are stored
        payload = audit_payload_adapter.validate_python(payload)
        dumped = payload.model_dump(mode="json")
        action = AuditAction(dumped["action"])

        audit_log = AuditLog(
            user_id=actor_id,
            action=action,
            affected_user_id=affected_user_id,
            resource=AUDIT_RESOURCES[action],
            resource_id=resource_id,
            old_values=dumped.get("old_values"),
            new_values=dumped.get("new_values"),
            reason=reason,
            ip_address=self.request_context.get("ip_address"),
            user_agent=self.request_context.get("user_agent"),
            endpoint=self.request_context.get("endpoint"),
            request_id=self.request_context.get("request_id"),
        )
        self.session.add(audit_log)
        await self.session.flush()
        logger.info(f"Audit {action.value} by {actor_id or 'system'} on {audit_log.resource} {resource_id}")
        return audit_log

    async def list_logs(
        self,
        page_index: int = 1,
        page_size: int = 100,
        action: Optional[AuditAction] = None,
        actor_id: Optional[int] = None,
        affected_user_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Get paginated audit logs, newest first"""
        try:
            conditions = []
            if action:
                conditions.append(AuditLog.action == action)
            if actor_id:
                conditions.append(AuditLog.user_id == actor_id)
            if affected_user_id:
                conditions.append(AuditLog.affected_user_id == affected_user_id)

            total_count = await self.session.scalar(
                select(func.count(AuditLog.id)).where(*conditions)
            )

            skip = (page_index - 1) * page_size
            logs = await self.session.scalars(
                select(AuditLog)
                .where(*conditions)
                .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
                .offset(skip)
                .limit(page_size)
            )

            return {
                "page_index": page_index,
                "page_size": page_size,
                "count": total_count or 0,
                "data": [AuditLogResponse.from_log(log) for log in logs.all()],
            }
        except Exception as e:
            logger.error(f"Error fetching audit logs: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error fetching audit logs")
