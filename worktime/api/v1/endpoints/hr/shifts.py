from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from worktime.api.dependencies import ensure_self_or_roles, get_current_user, require_roles
from worktime.core.database import get_async_session
from worktime.core.exceptions import NotFoundError
from worktime.models.auth.user import User
from worktime.models.shared.enums import UserRole
from worktime.schemas.common.pagination import PaginatedResponse
from worktime.schemas.hr.shift_schema import (
    ShiftResolutionResponse, ShiftTypeCreate, ShiftTypeResponse, ShiftTypeUpdate,
    UserShiftCreate, UserShiftResponse
)
from worktime.services.hr.shift_service import ShiftService

router = APIRouter()

# region Shift Type Endpoints

@router.post("/types", response_model=ShiftTypeResponse)
async def create_shift_type(
    shift_type: ShiftTypeCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR))
):
    """Create a new shift type"""
    service = ShiftService(session)
    return await service.create_shift_type(shift_type, current_user.id)

@router.get("/types", response_model=PaginatedResponse[ShiftTypeResponse])
async def get_shift_types(
    page_index: int = Query(1, ge=1),
    page_size: int = Query(100, ge=1, le=1000),
    is_active: Optional[bool] = Query(None),
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    """Get all shift types with pagination"""
    service = ShiftService(session)
    return await service.get_shift_types(
        page_index=page_index,
        page_size=page_size,
        is_active=is_active
    )

@router.get("/types/{shift_type_id}", response_model=ShiftTypeResponse)
async def get_shift_type(
    shift_type_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    """Get a specific shift type by ID"""
    service = ShiftService(session)
    shift_type = await service.get_shift_type(shift_type_id)
    if not shift_type:
        raise NotFoundError("Shift type not found")
    return shift_type

@router.put("/types/{shift_type_id}", response_model=ShiftTypeResponse)
async def update_shift_type(
    shift_type_id: int,
    shift_type: ShiftTypeUpdate,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR))
):
    """Update a shift type; past records keep the values they were computed with"""
    service = ShiftService(session)
    return await service.update_shift_type(shift_type_id, shift_type, current_user.id)

# endregion

# region User Shift Endpoints

@router.post("/assign", response_model=UserShiftResponse)
async def assign_shift(
    assignment: UserShiftCreate,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR))
):
    """Assign a shift to a user, closing the previous assignment"""
    service = ShiftService(session)
    return await service.assign_shift(assignment, current_user.id)

@router.get("/user/{user_id}/current", response_model=ShiftResolutionResponse)
async def get_current_shift(
    user_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    """Shift the aggregation engine would apply to the user today"""
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN, UserRole.HR, UserRole.MANAGER)
    service = ShiftService(session)
    shift = await service.resolve_shift_or_fallback(user_id)
    return ShiftResolutionResponse(
        user_id=user_id,
        shift_duration_minutes=shift.shift_duration_minutes,
        expected_work_minutes=shift.expected_work_minutes,
        **shift.model_dump()
    )

@router.get("/user/{user_id}/history", response_model=List[UserShiftResponse])
async def get_shift_history(
    user_id: int,
    session: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_user)
):
    ensure_self_or_roles(current_user, user_id, UserRole.ADMIN, UserRole.HR, UserRole.MANAGER)
    service = ShiftService(session)
    return await service.get_shift_history(user_id)

# endregion
