from worktime.models.auth.audit_log import AuditLog
from worktime.models.auth.user import User
from worktime.models.hr.daily_attendance import DailyAttendance
from worktime.models.hr.shift_type import ShiftType
from worktime.models.hr.time_session import TimeSession, TimeSessionBreak
from worktime.models.hr.user_shift import UserShift
