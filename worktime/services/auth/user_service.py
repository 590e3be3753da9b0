import logging
from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from worktime.models.auth.user import User
from worktime.models.shared.enums import UserRole

logger = logging.getLogger(__name__)

class UserService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: int) -> Optional[User]:
        """Get user by ID"""
        try:
            result = await self.session.execute(
                select(User).where(
                    User.id == user_id,
                    User.is_deleted == False
                )
            )
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"Error getting user {user_id}: {str(e)}")
            return None

    async def get_active_user_ids_by_roles(self, roles: Sequence[str]) -> List[int]:
        """IDs of active, non-deleted users holding one of the given roles"""
        role_values = [UserRole(r) for r in roles]
        result = await self.session.execute(
            select(User.id)
            .where(
                User.is_active == True,
                User.is_deleted == False,
                User.role.in_(role_values)
            )
            .order_by(User.id)
        )
        return list(result.scalars().all())
