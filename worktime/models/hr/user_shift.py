from sqlalchemy import Column, Integer, Boolean, ForeignKey, Date
from sqlalchemy.orm import relationship
from worktime.db.base import BaseModel

class UserShift(BaseModel):
    __tablename__ = 'user_shifts'

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    shift_type_id = Column(Integer, ForeignKey('shift_types.id'), nullable=False)
    effective_date = Column(Date, nullable=False)
    end_date = Column(Date)  # NULL means current
    is_active = Column(Boolean, default=True)

    # Relationships
    user = relationship("User", back_populates="user_shifts")
    shift_type = relationship("ShiftType", back_populates="user_shifts")
