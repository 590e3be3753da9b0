"""
Typed audit payloads.

Each audited mutation kind has its own before/after snapshot shape, discriminated by
``action``. Entries are validated against this union before they are persisted and
when they are read back, so the trail can be replayed field by field.
"""
from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from worktime.models.shared.enums import AuditAction, BreakEndSource, SessionClosedBy, TimeSessionStatus


class SessionSnapshot(BaseModel):
    session_date: date
    clock_in: datetime
    clock_out: Optional[datetime] = None
    status: TimeSessionStatus
    total_work_minutes: int = 0
    total_break_minutes: int = 0
    notes: Optional[str] = None
    closed_by: Optional[SessionClosedBy] = None

    @classmethod
    def of(cls, ts) -> "SessionSnapshot":
        return cls(
            session_date=ts.session_date,
            clock_in=ts.clock_in,
            clock_out=ts.clock_out,
            status=ts.status,
            total_work_minutes=ts.total_work_minutes or 0,
            total_break_minutes=ts.total_break_minutes or 0,
            notes=ts.notes,
            closed_by=ts.closed_by,
        )


class BreakSnapshot(BaseModel):
    time_session_id: int
    break_start: datetime
    break_end: Optional[datetime] = None
    duration_minutes: int = 0
    reason: Optional[str] = None
    end_source: Optional[BreakEndSource] = None

    @classmethod
    def of(cls, brk) -> "BreakSnapshot":
        return cls(
            time_session_id=brk.time_session_id,
            break_start=brk.break_start,
            break_end=brk.break_end,
            duration_minutes=brk.duration_minutes or 0,
            reason=brk.reason,
            end_source=brk.end_source,
        )


class ClockInAudit(BaseModel):
    action: Literal["clock_in"] = "clock_in"
    old_values: None = None
    new_values: SessionSnapshot


class ClockOutAudit(BaseModel):
    action: Literal["clock_out"] = "clock_out"
    old_values: SessionSnapshot
    new_values: SessionSnapshot


class AutoCloseAudit(BaseModel):
    action: Literal["auto_close"] = "auto_close"
    old_values: SessionSnapshot
    new_values: SessionSnapshot


class BreakStartAudit(BaseModel):
    action: Literal["break_start"] = "break_start"
    old_values: None = None
    new_values: BreakSnapshot


class BreakEndAudit(BaseModel):
    action: Literal["break_end"] = "break_end"
    old_values: BreakSnapshot
    new_values: BreakSnapshot


class ManualEntryCreateAudit(BaseModel):
    action: Literal["manual_entry_create"] = "manual_entry_create"
    old_values: None = None
    new_values: SessionSnapshot


class ManualEntryUpdateAudit(BaseModel):
    action: Literal["manual_entry_update"] = "manual_entry_update"
    old_values: SessionSnapshot
    new_values: SessionSnapshot


class ManualEntryDeleteAudit(BaseModel):
    action: Literal["manual_entry_delete"] = "manual_entry_delete"
    old_values: SessionSnapshot
    new_values: None = None


AuditPayload = Annotated[
    Union[
        ClockInAudit,
        ClockOutAudit,
        AutoCloseAudit,
        BreakStartAudit,
        BreakEndAudit,
        ManualEntryCreateAudit,
        ManualEntryUpdateAudit,
        ManualEntryDeleteAudit,
    ],
    Field(discriminator="action"),
]

audit_payload_adapter = TypeAdapter(AuditPayload)

# resource name recorded for each kind
AUDIT_RESOURCES = {
    AuditAction.CLOCK_IN: "TimeSession",
    AuditAction.CLOCK_OUT: "TimeSession",
    AuditAction.AUTO_CLOSE: "TimeSession",
    AuditAction.BREAK_START: "TimeSessionBreak",
    AuditAction.BREAK_END: "TimeSessionBreak",
    AuditAction.MANUAL_ENTRY_CREATE: "TimeSession",
    AuditAction.MANUAL_ENTRY_UPDATE: "TimeSession",
    AuditAction.MANUAL_ENTRY_DELETE: "TimeSession",
}


class AuditLogResponse(BaseModel):
    id: int
    action: AuditAction
    user_id: Optional[int] = None
    affected_user_id: Optional[int] = None
    resource: str
    resource_id: Optional[int] = None
    payload: AuditPayload
    reason: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    endpoint: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def from_log(cls, log) -> "AuditLogResponse":
        payload = audit_payload_adapter.validate_python(
            {"action": AuditAction(log.action).value, "old_values": log.old_values, "new_values": log.new_values}
        )
        return cls(
            id=log.id,
            action=log.action,
            user_id=log.user_id,
            affected_user_id=log.affected_user_id,
            resource=log.resource,
            resource_id=log.resource_id,
            payload=payload,
            reason=log.reason,
            ip_address=log.ip_address,
            user_agent=log.user_agent,
            endpoint=log.endpoint,
            request_id=log.request_id,
            timestamp=log.timestamp,
        )


class AuditLogPage(BaseModel):
    page_index: int
    page_size: int
    count: int
    data: List[AuditLogResponse]
