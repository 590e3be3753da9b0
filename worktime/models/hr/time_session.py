from sqlalchemy import Column, Integer, String, DateTime, Date, Text, ForeignKey, Index, Enum as SQLEnum, text
from sqlalchemy.orm import relationship
from worktime.db.base import BaseModel
from worktime.models.shared.enums import BreakEndSource, SessionClosedBy, TimeSessionSource, TimeSessionStatus

class TimeSession(BaseModel):
    """One clock-in to clock-out cycle of a user, owned by a calendar date."""
    __tablename__ = 'time_sessions'
    __table_args__ = (
        Index('ix_time_sessions_user_date', 'user_id', 'session_date'),
        # at most one ACTIVE session per user
        Index(
            'uq_time_sessions_active_user',
            'user_id',
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    session_date = Column(Date, nullable=False, index=True)
    clock_in = Column(DateTime(timezone=True), nullable=False)
    clock_out = Column(DateTime(timezone=True), nullable=True)
    status = Column(SQLEnum(TimeSessionStatus), nullable=False, default=TimeSessionStatus.ACTIVE, index=True)
    source = Column(SQLEnum(TimeSessionSource), nullable=False, default=TimeSessionSource.LIVE)
    closed_by = Column(SQLEnum(SessionClosedBy), nullable=True)
    total_work_minutes = Column(Integer, default=0)
    total_break_minutes = Column(Integer, default=0)
    notes = Column(Text)

    # Relationships
    user = relationship("User", back_populates="time_sessions")
    breaks = relationship(
        "TimeSessionBreak",
        back_populates="time_session",
        order_by="TimeSessionBreak.break_start",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def open_break(self):
        for brk in self.breaks:
            if brk.break_end is None:
                return brk
        return None

    def __repr__(self):
        return f"<TimeSession {self.id} user={self.user_id} {self.session_date} {self.status}>"


class TimeSessionBreak(BaseModel):
    __tablename__ = 'time_session_breaks'
    __table_args__ = (
        # at most one open break per session
        Index(
            'uq_time_session_breaks_open',
            'time_session_id',
            unique=True,
            sqlite_where=text("break_end IS NULL"),
            postgresql_where=text("break_end IS NULL"),
        ),
    )

    time_session_id = Column(Integer, ForeignKey('time_sessions.id', ondelete='CASCADE'), nullable=False, index=True)
    break_start = Column(DateTime(timezone=True), nullable=False)
    break_end = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, default=0)
    reason = Column(String(255), default="Unspecified")
    end_source = Column(SQLEnum(BreakEndSource), nullable=True)

    # Relationships
    time_session = relationship("TimeSession", back_populates="breaks")
