from pydantic import BaseModel, validator
from typing import List, Optional
from datetime import time, date, datetime

from worktime.utils.date_time import wrapped_duration_minutes

class ShiftTypeBase(BaseModel):
    name: str
    start_time: time
    end_time: time
    break_duration_minutes: int = 60
    late_grace_minutes: int = 15
    is_default: bool = False

class ShiftTypeCreate(ShiftTypeBase):
    @validator('name')
    def validate_name(cls, v):
        if not v or len(v.strip()) < 2:
            raise ValueError('Shift name must be at least 2 characters')
        return v.strip()

    @validator('break_duration_minutes', 'late_grace_minutes')
    def validate_minutes(cls, v):
        if v < 0:
            raise ValueError('Minutes cannot be negative')
        return v

class ShiftTypeUpdate(BaseModel):
    name: Optional[str] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    break_duration_minutes: Optional[int] = None
    late_grace_minutes: Optional[int] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None

class ShiftTypeResponse(ShiftTypeBase):
    id: int
    is_active: bool
    superseded_by_id: Optional[int] = None
    shift_duration_minutes: int
    expected_work_minutes: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserShiftCreate(BaseModel):
    user_id: int
    shift_type_id: int
    effective_date: date
    end_date: Optional[date] = None

    @validator('end_date')
    def validate_end_date(cls, v, values):
        if v is not None and 'effective_date' in values and v < values['effective_date']:
            raise ValueError('End date cannot be before effective date')
        return v

class UserShiftResponse(BaseModel):
    id: int
    user_id: int
    shift_type_id: int
    effective_date: date
    end_date: Optional[date] = None
    is_active: bool
    shift_type: Optional[ShiftTypeResponse] = None

    class Config:
        from_attributes = True

class ShiftConfig(BaseModel):
    """Effective shift for a user, as resolved for aggregation."""
    shift_type_id: Optional[int] = None
    name: str
    start_time: time
    end_time: time
    late_grace_minutes: int = 0
    break_duration_minutes: int = 0
    is_fallback: bool = False

    @property
    def shift_duration_minutes(self) -> int:
        return wrapped_duration_minutes(self.start_time, self.end_time)

    @property
    def expected_work_minutes(self) -> int:
        return self.shift_duration_minutes - self.break_duration_minutes

    class Config:
        from_attributes = True

class ShiftResolutionResponse(BaseModel):
    user_id: int
    shift_type_id: Optional[int] = None
    name: str
    start_time: time
    end_time: time
    late_grace_minutes: int
    break_duration_minutes: int
    shift_duration_minutes: int
    expected_work_minutes: int
    is_fallback: bool
