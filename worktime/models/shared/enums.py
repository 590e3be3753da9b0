from sqlalchemy.orm import declarative_base
from enum import Enum

Base = declarative_base()

# Enums
class UserRole(str, Enum):
    ADMIN = "admin"
    HR = "hr"
    MANAGER = "manager"
    EMPLOYEE = "employee"

class TimeSessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"

class TimeSessionSource(str, Enum):
    LIVE = "LIVE"
    MANUAL = "MANUAL"

class SessionClosedBy(str, Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"

class BreakEndSource(str, Enum):
    USER = "USER"                      # explicit end-break
    AUTO_CLOCK_OUT = "AUTO_CLOCK_OUT"  # closed by clock-out while still on break
    SYSTEM_SWEEP = "SYSTEM_SWEEP"      # closed by the stuck-session sweep

class DailyAttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    HALF_DAY = "HALF_DAY"
    ABSENT = "ABSENT"

class AuditAction(str, Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"
    BREAK_START = "break_start"
    BREAK_END = "break_end"
    AUTO_CLOSE = "auto_close"
    MANUAL_ENTRY_CREATE = "manual_entry_create"
    MANUAL_ENTRY_UPDATE = "manual_entry_update"
    MANUAL_ENTRY_DELETE = "manual_entry_delete"

class SweepJob(str, Enum):
    ABSENCE = "absence_sweep"
    STUCK_SESSIONS = "stuck_session_sweep"
