from fastapi import HTTPException, status

class BaseAppException(HTTPException):
    def __init__(self, status_code: int, detail: str):
        super().__init__(status_code=status_code, detail=detail)

class ValidationError(BaseAppException):
    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

class NotFoundError(BaseAppException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

class PermissionDeniedError(BaseAppException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

# region Session state conflicts
# Recoverable by the caller re-reading state; never retried automatically.

class StateConflictError(BaseAppException):
    def __init__(self, detail: str = "Conflicting session state"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

class AlreadyActiveError(StateConflictError):
    def __init__(self, detail: str = "You already have an active session. Clock out first."):
        super().__init__(detail=detail)

class NoActiveSessionError(StateConflictError):
    def __init__(self, detail: str = "No active session. Clock in first."):
        super().__init__(detail=detail)

class BreakAlreadyOpenError(StateConflictError):
    def __init__(self, detail: str = "You are already on break"):
        super().__init__(detail=detail)

class NoOpenBreakError(StateConflictError):
    def __init__(self, detail: str = "No active break to end"):
        super().__init__(detail=detail)

class DuplicateSessionError(StateConflictError):
    def __init__(self, detail: str = "A time entry already exists for this user on this date"):
        super().__init__(detail=detail)

# endregion

class NoShiftConfiguredError(BaseAppException):
    """Neither an assignment nor a default shift exists. A configuration problem, not a per-session one."""
    def __init__(self, detail: str = "No shift configured and no default shift defined"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
