from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Enum as SQLEnum, event
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from worktime.db.base import BaseModel
from worktime.models.shared.enums import AuditAction

class AuditLog(BaseModel):
    __tablename__ = "audit_logs"

    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # actor, NULL for the system
    action = Column(SQLEnum(AuditAction, values_callable=lambda e: [m.value for m in e]), nullable=False, index=True)
    affected_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    resource = Column(String(100), nullable=False)
    resource_id = Column(Integer, nullable=True, index=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    endpoint = Column(String(255), nullable=True)
    request_id = Column(String(100), nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    affected_user = relationship("User", foreign_keys=[affected_user_id])

    def __repr__(self):
        return f"<AuditLog {self.action} on {self.resource}>"


class AuditLogImmutableError(RuntimeError):
    pass


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log {target.id} is append-only")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log {target.id} is append-only")
