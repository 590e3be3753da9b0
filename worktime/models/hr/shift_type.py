from sqlalchemy import Column, String, Boolean, Integer, Time, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from worktime.db.base import BaseModel
from worktime.utils.date_time import wrapped_duration_minutes

class ShiftType(BaseModel):
    """
    Shift definition. Once attendance history points at a row its timing is frozen:
    a timing edit creates a new version and retires the old one.
    """
    __tablename__ = 'shift_types'
    __table_args__ = (
        # names are reused across versions, unique among live rows only
        Index(
            'uq_shift_types_active_name',
            'name',
            unique=True,
            sqlite_where=text("is_active = 1 AND is_deleted = 0"),
            postgresql_where=text("is_active AND NOT is_deleted"),
        ),
    )

    name = Column(String(50), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    break_duration_minutes = Column(Integer, default=60)  # paid break allowance
    late_grace_minutes = Column(Integer, default=15)
    is_default = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    superseded_by_id = Column(Integer, ForeignKey('shift_types.id'), nullable=True)

    # Relationships
    user_shifts = relationship("UserShift", back_populates="shift_type")

    @property
    def shift_duration_minutes(self) -> int:
        return wrapped_duration_minutes(self.start_time, self.end_time)

    @property
    def expected_work_minutes(self) -> int:
        return self.shift_duration_minutes - (self.break_duration_minutes or 0)
