from fastapi import APIRouter
from worktime.api.v1.endpoints.auth import audit_logs
from worktime.api.v1.endpoints.hr import attendance, manual_entries, shifts, time_sessions

api_router = APIRouter()

# Time tracking routes
api_router.include_router(time_sessions.router, prefix="/time", tags=["Time Tracking"])
api_router.include_router(manual_entries.router, prefix="/manual-entries", tags=["Time Tracking"])

# Attendance routes
api_router.include_router(attendance.router, prefix="/attendance", tags=["Attendance"])
api_router.include_router(shifts.router, prefix="/shifts", tags=["Shifts"])

# Audit routes
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["Audit"])
