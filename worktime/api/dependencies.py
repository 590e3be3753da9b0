from typing import Callable, Dict, Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from worktime.core.database import async_session_maker, get_async_session
from worktime.core.exceptions import PermissionDeniedError
from worktime.core.request_context import get_request_context
from worktime.auth.jwt_handler import decode_access_token
from worktime.models.auth.user import User
from worktime.models.shared.enums import UserRole
from worktime.services.auth.user_service import UserService
import logging

security = HTTPBearer()
logger = logging.getLogger(__name__)

def _unauthorized(detail: str = "Invalid authentication credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_async_session)
) -> User:
    """Get current authenticated user"""
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized()

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _unauthorized()

    user = await UserService(session).get_user(user_id)
    if user is None or not user.is_active:
        raise _unauthorized("User not found or inactive")

    # Add request info to context
    request.state.current_user = user
    return user

def require_roles(*roles: UserRole) -> Callable:
    """
    Dependency that lets only the given roles through.

    Examples:
        require_roles(UserRole.ADMIN)                   # admin only
        require_roles(UserRole.ADMIN, UserRole.HR)      # admin or hr
    """
    allowed = {UserRole(r) for r in roles}

    async def role_dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning(f"User {current_user.id} ({current_user.role}) denied, requires one of {sorted(r.value for r in allowed)}")
            raise PermissionDeniedError()
        return current_user

    return role_dependency

def ensure_self_or_roles(current_user: User, user_id: int, *roles: UserRole) -> None:
    """Users may read their own data; anyone else needs one of the roles."""
    if current_user.id != user_id and current_user.role not in set(roles):
        raise PermissionDeniedError()

async def get_audit_context(request: Request) -> Dict[str, Optional[str]]:
    return get_request_context(request)

def get_session_factory() -> Callable[[], AsyncSession]:
    """Session factory for work that opens one session per unit (sweeps)"""
    return async_session_maker
