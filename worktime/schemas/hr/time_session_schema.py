from pydantic import BaseModel, validator
from typing import List, Optional
from datetime import date, datetime
from worktime.models.shared.enums import BreakEndSource, SessionClosedBy, TimeSessionSource, TimeSessionStatus

class ClockInRequest(BaseModel):
    notes: Optional[str] = None

class BreakStartRequest(BaseModel):
    reason: Optional[str] = None

    @validator('reason')
    def validate_reason(cls, v):
        if v is not None and len(v) > 255:
            raise ValueError('Reason must be at most 255 characters')
        return v

class ClockOutRequest(BaseModel):
    note: Optional[str] = None

class BreakResponse(BaseModel):
    id: int
    break_start: datetime
    break_end: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    reason: Optional[str] = None
    end_source: Optional[BreakEndSource] = None

    class Config:
        from_attributes = True

class TimeSessionResponse(BaseModel):
    id: int
    user_id: int
    session_date: date
    clock_in: datetime
    clock_out: Optional[datetime] = None
    status: TimeSessionStatus
    source: TimeSessionSource
    closed_by: Optional[SessionClosedBy] = None
    total_work_minutes: int = 0
    total_break_minutes: int = 0
    notes: Optional[str] = None
    breaks: List[BreakResponse] = []

    class Config:
        from_attributes = True

class ActiveSessionResponse(BaseModel):
    """Open session with live counters computed at request time."""
    session: TimeSessionResponse
    on_break: bool
    elapsed_minutes: int
    work_minutes: int
    break_minutes: int

class WorkingUserResponse(BaseModel):
    session_id: int
    user_id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    clock_in: datetime
    on_break: bool
    elapsed_minutes: int
    work_minutes: int
    break_minutes: int
