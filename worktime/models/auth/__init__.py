from worktime.models.auth.audit_log import AuditLog
from worktime.models.auth.user import User
