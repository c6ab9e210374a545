from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func
from pydantic import BaseModel

from app.crud.base import CRUDBase
from app.models.user_role import UserRole, AppRole


class UserRoleCreate(BaseModel):
    user_id: str
    role: AppRole


class CRUDUserRole(CRUDBase[UserRole, UserRoleCreate, BaseModel]):
    async def has_role(self, db: AsyncSession, user_id: str, role: AppRole) -> bool:
        result = await db.execute(
            select(func.count(self.model.id)).where(
                and_(
                    self.model.user_id == user_id,
                    self.model.role == role,
                    self.model.is_deleted == False
                )
            )
        )
        return (result.scalar() or 0) > 0


user_role_crud = CRUDUserRole(UserRole)
