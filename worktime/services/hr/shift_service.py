import logging
from typing import Any, Dict, Optional, List
from datetime import date, datetime, timedelta
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import selectinload

from worktime.core.config import settings
from worktime.core.exceptions import NoShiftConfiguredError, NotFoundError, ValidationError
from worktime.models.hr.daily_attendance import DailyAttendance
from worktime.models.hr.shift_type import ShiftType
from worktime.models.hr.user_shift import UserShift
from worktime.schemas.hr.shift_schema import ShiftConfig, ShiftTypeCreate, ShiftTypeUpdate, UserShiftCreate
from worktime.services.auth.user_service import UserService
from worktime.utils.date_time import local_date, utc_now
from worktime.utils.validators import is_valid_break_allowance, is_valid_shift

logger = logging.getLogger(__name__)

# fields that change how a day is derived
TIMING_FIELDS = ("start_time", "end_time", "late_grace_minutes", "break_duration_minutes")
VERSIONED_FIELDS = ("name",) + TIMING_FIELDS + ("is_default", "is_active")


def fallback_shift() -> ShiftConfig:
    """Shift used for aggregation when neither an assignment nor a default shift exists."""
    start = settings.FALLBACK_SHIFT_START
    end = (datetime.combine(date.min, start) + timedelta(minutes=settings.FALLBACK_SHIFT_DURATION_MINUTES)).time()
    return ShiftConfig(
        shift_type_id=None,
        name="Fallback",
        start_time=start,
        end_time=end,
        late_grace_minutes=settings.FALLBACK_GRACE_MINUTES,
        break_duration_minutes=settings.FALLBACK_BREAK_MINUTES,
        is_fallback=True,
    )


def to_shift_config(shift_type: ShiftType) -> ShiftConfig:
    return ShiftConfig(
        shift_type_id=shift_type.id,
        name=shift_type.name,
        start_time=shift_type.start_time,
        end_time=shift_type.end_time,
        late_grace_minutes=shift_type.late_grace_minutes or 0,
        break_duration_minutes=shift_type.break_duration_minutes or 0,
    )


class ShiftService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.user_service = UserService(session)

    # region Shift Type Management

    async def _clear_other_defaults(self, keep_id: Optional[int] = None):
        stmt = update(ShiftType).where(ShiftType.is_default == True)
        if keep_id is not None:
            stmt = stmt.where(ShiftType.id != keep_id)
        await self.session.execute(stmt.values(is_default=False))

    async def create_shift_type(self, data: ShiftTypeCreate, current_user_id: int) -> ShiftType:
        try:
            if not is_valid_shift(data.start_time, data.end_time):
                raise ValidationError("Shift must have a positive duration")
            if not is_valid_break_allowance(data.start_time, data.end_time, data.break_duration_minutes):
                raise ValidationError("Break allowance must be shorter than the shift")

            await self._ensure_unique_name(data.name)

            if data.is_default:
                await self._clear_other_defaults()

            shift_type = ShiftType(**data.model_dump(), created_by=current_user_id)
            self.session.add(shift_type)
            await self.session.flush()
            await self.session.commit()
            await self.session.refresh(shift_type)

            logger.info(f"Shift type created: {shift_type.name} by user {current_user_id}")
            return shift_type

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error creating shift type: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error creating shift type")

    async def get_shift_types(
        self,
        page_index: int = 1,
        page_size: int = 100,
        is_active: Optional[bool] = None
    ) -> Dict[str, Any]:
        """Get paginated shift types with filtering"""
        try:
            conditions = [ShiftType.is_deleted == False]

            if is_active is not None:
                conditions.append(ShiftType.is_active == is_active)

            total_count = await self.session.scalar(
                select(func.count(ShiftType.id)).where(*conditions)
            )

            skip = (page_index - 1) * page_size

            shift_types = await self.session.scalars(
                select(ShiftType)
                .where(*conditions)
                .order_by(ShiftType.id)
                .offset(skip)
                .limit(page_size)
            )

            return {
                "page_index": page_index,
                "page_size": page_size,
                "count": total_count or 0,
                "data": shift_types.all()
            }

        except Exception as e:
            logger.error(f"Error getting shift types: {e}")
            return {
                "page_index": page_index,
                "page_size": page_size,
                "count": 0,
                "data": []
            }

    async def get_shift_type(self, shift_type_id: int) -> Optional[ShiftType]:
        try:
            result = await self.session.execute(
                select(ShiftType).where(
                    ShiftType.id == shift_type_id,
                    ShiftType.is_deleted == False
                )
            )
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"Error getting shift type {shift_type_id}: {e}")
            return None

    async def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None):
        stmt = select(ShiftType.id).where(
            ShiftType.name == name,
            ShiftType.is_active == True,
            ShiftType.is_deleted == False,
        )
        if exclude_id is not None:
            stmt = stmt.where(ShiftType.id != exclude_id)
        if await self.session.scalar(stmt.limit(1)) is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Shift type '{name}' already exists")

    async def is_referenced(self, shift_type_id: int) -> bool:
        """True once any attendance record or assignment points at the shift."""
        recorded = await self.session.scalar(
            select(DailyAttendance.id).where(DailyAttendance.shift_type_id == shift_type_id).limit(1)
        )
        if recorded is not None:
            return True
        assigned = await self.session.scalar(
            select(UserShift.id).where(UserShift.shift_type_id == shift_type_id, UserShift.is_deleted == False).limit(1)
        )
        return assigned is not None

    async def _create_version(self, current: ShiftType, changes: Dict[str, Any], current_user_id: int) -> ShiftType:
        """
        Retire `current` and continue it as a new row carrying `changes`. Open assignments
        move to the new row from today on; closed ones and attendance records keep the old row.
        """
        cutover = local_date(utc_now())
        values = {field: getattr(current, field) for field in VERSIONED_FIELDS}
        values.update(changes)

        current.is_active = False
        current.is_default = False
        current.updated_by = current_user_id
        # retire first so the name is free for the new row
        await self.session.flush()

        successor = ShiftType(**values, created_by=current_user_id)
        self.session.add(successor)
        await self.session.flush()
        current.superseded_by_id = successor.id
        if successor.is_default:
            await self._clear_other_defaults(keep_id=successor.id)

        open_assignments = await self.session.scalars(
            select(UserShift).where(
                UserShift.shift_type_id == current.id,
                UserShift.is_active == True,
                UserShift.is_deleted == False,
                or_(UserShift.end_date.is_(None), UserShift.end_date >= cutover),
            )
        )
        for assignment in open_assignments.all():
            if assignment.effective_date >= cutover:
                assignment.shift_type_id = successor.id
                continue
            self.session.add(UserShift(
                user_id=assignment.user_id,
                shift_type_id=successor.id,
                effective_date=cutover,
                end_date=assignment.end_date,
                created_by=current_user_id,
            ))
            assignment.end_date = cutover - timedelta(days=1)
            assignment.is_active = False
            assignment.updated_by = current_user_id

        logger.info(f"Shift type {current.id} ({current.name}) superseded by {successor.id} from {cutover}")
        return successor

    async def update_shift_type(self, shift_type_id: int, data: ShiftTypeUpdate, current_user_id: int) -> ShiftType:
        """
        Apply an edit. Timing changes to a shift that history already refers to produce a
        new version, so re-deriving a past day still sees the timing it was recorded under.
        """
        try:
            shift_type = await self.get_shift_type(shift_type_id)
            if not shift_type:
                raise NotFoundError("Shift type not found")
            if not shift_type.is_active and shift_type.superseded_by_id is not None:
                raise ValidationError(f"Shift type was superseded by {shift_type.superseded_by_id}; edit that one instead")

            changes = data.model_dump(exclude_unset=True)
            # validate against existing values where the update leaves them out
            start_time = changes.get("start_time", shift_type.start_time)
            end_time = changes.get("end_time", shift_type.end_time)
            break_minutes = changes.get("break_duration_minutes", shift_type.break_duration_minutes)
            if not is_valid_shift(start_time, end_time):
                raise ValidationError("Shift must have a positive duration")
            if not is_valid_break_allowance(start_time, end_time, break_minutes or 0):
                raise ValidationError("Break allowance must be shorter than the shift")
            if (changes.get("late_grace_minutes") or 0) < 0:
                raise ValidationError("Minutes cannot be negative")
            if changes.get("name") and changes["name"] != shift_type.name:
                await self._ensure_unique_name(changes["name"], exclude_id=shift_type.id)

            timing_changed = any(
                field in changes and changes[field] != getattr(shift_type, field) for field in TIMING_FIELDS
            )
            if timing_changed and await self.is_referenced(shift_type.id):
                shift_type = await self._create_version(shift_type, changes, current_user_id)
            else:
                if changes.get("is_default"):
                    await self._clear_other_defaults(keep_id=shift_type.id)
                for field, value in changes.items():
                    setattr(shift_type, field, value)
                shift_type.updated_by = current_user_id
                shift_type.updated_at = utc_now()

            await self.session.commit()
            await self.session.refresh(shift_type)
            logger.info(f"Shift type updated: {shift_type.name} by user {current_user_id}")
            return shift_type

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error updating shift type {shift_type_id}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error updating shift type")

    # endregion

    # region User Shift Management

    async def assign_shift(self, data: UserShiftCreate, current_user_id: int) -> UserShift:
        try:
            user = await self.user_service.get_user(data.user_id)
            if not user or not user.is_active:
                raise NotFoundError(f"User with ID {data.user_id} not found")

            shift_type = await self.get_shift_type(data.shift_type_id)
            if not shift_type or not shift_type.is_active:
                raise NotFoundError(f"Shift type with ID {data.shift_type_id} not found")

            # deactivate the previous assignment; its dated range keeps resolving past days
            current_res = await self.session.execute(
                select(UserShift).where(
                    UserShift.user_id == data.user_id,
                    UserShift.is_active == True,
                    UserShift.is_deleted == False,
                )
            )
            for current_active in current_res.scalars().all():
                current_active.is_active = False
                current_active.updated_by = current_user_id
                if current_active.effective_date >= data.effective_date:
                    # never took effect
                    current_active.end_date = current_active.effective_date - timedelta(days=1)
                elif current_active.end_date is None or current_active.end_date >= data.effective_date:
                    current_active.end_date = data.effective_date - timedelta(days=1)

            user_shift = UserShift(**data.model_dump(), created_by=current_user_id)
            self.session.add(user_shift)

            await self.session.commit()
            await self.session.refresh(user_shift, attribute_names=["shift_type"])

            logger.info(f"Shift assigned: user {data.user_id} -> {shift_type.name} by user {current_user_id}")
            return user_shift

        except HTTPException:
            raise
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Error assigning shift: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error assigning shift")

    async def get_current_assignment(self, user_id: int, on_date: Optional[date] = None) -> Optional[UserShift]:
        """
        Assignment covering on_date. The active one applies while its shift is live;
        deactivated ones still cover the dates inside their closed range.
        """
        on_date = on_date or local_date(utc_now())
        result = await self.session.execute(
            select(UserShift)
            .options(selectinload(UserShift.shift_type))
            .join(ShiftType, ShiftType.id == UserShift.shift_type_id)
            .where(
                UserShift.user_id == user_id,
                UserShift.is_deleted == False,
                UserShift.effective_date <= on_date,
                or_(
                    and_(
                        UserShift.is_active == True,
                        ShiftType.is_active == True,
                        or_(UserShift.end_date.is_(None), UserShift.end_date >= on_date),
                    ),
                    and_(UserShift.is_active == False, UserShift.end_date >= on_date),
                ),
                ShiftType.is_deleted == False,
            )
            .order_by(UserShift.effective_date.desc(), UserShift.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_shift_history(self, user_id: int) -> List[UserShift]:
        try:
            result = await self.session.execute(
                select(UserShift)
                .options(selectinload(UserShift.shift_type))
                .where(UserShift.user_id == user_id, UserShift.is_deleted == False)
                .order_by(UserShift.effective_date.desc())
            )
            return result.scalars().all()
        except Exception as e:
            logger.error(f"Error getting shift history for user {user_id}: {e}")
            return []

    # endregion

    # region Shift Resolution

    async def get_default_shift_type(self) -> Optional[ShiftType]:
        result = await self.session.execute(
            select(ShiftType)
            .where(
                ShiftType.is_default == True,
                ShiftType.is_active == True,
                ShiftType.is_deleted == False,
            )
            .order_by(ShiftType.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def resolve_shift(self, user_id: int, on_date: Optional[date] = None) -> ShiftConfig:
        """
        Effective shift for a user: the active assignment covering on_date, otherwise
        the organisation default. Raises NoShiftConfiguredError when neither exists.
        """
        assignment = await self.get_current_assignment(user_id, on_date)
        if assignment is not None:
            return to_shift_config(assignment.shift_type)

        default_shift = await self.get_default_shift_type()
        if default_shift is not None:
            return to_shift_config(default_shift)

        raise NoShiftConfiguredError()

    async def resolve_shift_or_fallback(self, user_id: int, on_date: Optional[date] = None) -> ShiftConfig:
        """Same as resolve_shift, but aggregation never stops on missing configuration."""
        try:
            return await self.resolve_shift(user_id, on_date)
        except NoShiftConfiguredError:
            logger.warning(f"⚠️ No shift configured for user {user_id}, using fallback shift")
            return fallback_shift()

    # endregion
