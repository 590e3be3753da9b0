from pydantic import BaseModel, validator
from typing import List, Optional
from datetime import date, datetime
from worktime.models.shared.enums import DailyAttendanceStatus

class SessionSummary(BaseModel):
    session_id: int
    clock_in: datetime
    clock_out: Optional[datetime] = None
    duration_minutes: int
    break_minutes: int = 0
    source: Optional[str] = None
    notes: Optional[str] = None

class DailyAttendanceResponse(BaseModel):
    id: int
    user_id: int
    attendance_date: date
    shift_type_id: Optional[int] = None
    sessions: List[SessionSummary] = []
    work_minutes: int
    break_minutes: int
    is_late_check_in: bool
    is_early_check_out: bool
    is_overtime: bool
    overtime_minutes: int
    attendance_percentage: int
    status: DailyAttendanceStatus
    remarks: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RecomputeRequest(BaseModel):
    user_id: int
    start_date: date
    end_date: Optional[date] = None

    @validator('end_date')
    def validate_range(cls, v, values):
        start = values.get('start_date')
        if v is not None and start is not None:
            if v < start:
                raise ValueError('end_date cannot be before start_date')
            if (v - start).days > 62:
                raise ValueError('Recompute range is limited to 62 days')
        return v

class AttendanceMonthSummary(BaseModel):
    user_id: int
    month: int
    year: int
    recorded_days: int
    present_days: int
    half_days: int
    absent_days: int
    late_days: int
    early_check_out_days: int
    overtime_days: int
    total_work_minutes: int
    total_break_minutes: int
    total_overtime_minutes: int
    average_attendance_percentage: float
