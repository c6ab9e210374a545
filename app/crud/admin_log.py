from typing import List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc
from pydantic import BaseModel

from app.crud.base import CRUDBase
from app.models.admin_log import AdminLog
from app.schemas.admin import AdminLogCreate


class CRUDAdminLog(CRUDBase[AdminLog, AdminLogCreate, BaseModel]):
    async def get_recent(self, db: AsyncSession, skip: int = 0, limit: int = 50) -> Tuple[List[AdminLog], int]:
        """Newest audit entries first"""
        total_result = await db.execute(select(func.count(self.model.id)))
        total = total_result.scalar() or 0
        result = await db.execute(
            select(self.model).order_by(desc(self.model.created_at)).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total


admin_log_crud = CRUDAdminLog(AdminLog)
