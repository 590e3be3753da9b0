from sqlalchemy import Column, String, Boolean, Enum as SQLEnum
from sqlalchemy.orm import relationship
from worktime.db.base import BaseModel
from worktime.models.shared.enums import UserRole

class User(BaseModel):
    """Directory entry consumed by the attendance engine: identity, role and active flags."""
    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False, default=UserRole.EMPLOYEE)
    is_active = Column(Boolean, default=True)

    # Relationships
    user_shifts = relationship("UserShift", back_populates="user")
    time_sessions = relationship("TimeSession", back_populates="user")

    def __repr__(self):
        return f"<User {self.email}>"
