from sqlalchemy import Column, Integer, Boolean, Date, Text, ForeignKey, JSON, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from worktime.db.base import BaseModel
from worktime.models.shared.enums import DailyAttendanceStatus

class DailyAttendance(BaseModel):
    """Derived per-day summary; rewritten from the full session list on every aggregation."""
    __tablename__ = 'daily_attendances'
    __table_args__ = (
        UniqueConstraint('user_id', 'attendance_date', name='uq_daily_attendances_user_date'),
    )

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    attendance_date = Column(Date, nullable=False, index=True)
    shift_type_id = Column(Integer, ForeignKey('shift_types.id'), nullable=True)
    sessions = Column(JSON, default=list)
    work_minutes = Column(Integer, default=0)
    break_minutes = Column(Integer, default=0)
    is_late_check_in = Column(Boolean, default=False)
    is_early_check_out = Column(Boolean, default=False)
    is_overtime = Column(Boolean, default=False)
    overtime_minutes = Column(Integer, default=0)
    attendance_percentage = Column(Integer, default=0)
    status = Column(SQLEnum(DailyAttendanceStatus), nullable=False)
    remarks = Column(Text)

    # Relationships
    user = relationship("User")
    shift_type = relationship("ShiftType")
