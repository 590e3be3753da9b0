from pydantic import BaseModel, validator
from typing import Optional
from datetime import date, datetime

class ManualSessionCreate(BaseModel):
    user_id: int
    session_date: date
    clock_in: datetime
    clock_out: datetime
    reason: str
    notes: Optional[str] = None

    @validator('reason')
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError('A reason is required for manual entries')
        return v.strip()

class ManualSessionUpdate(BaseModel):
    clock_in: Optional[datetime] = None
    clock_out: Optional[datetime] = None
    notes: Optional[str] = None
    reason: str

    @validator('reason')
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError('A reason is required for manual entries')
        return v.strip()
