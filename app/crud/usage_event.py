from typing import Dict, Optional
from datetime import datetime
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func

from app.crud.base import CRUDBase
from app.models.usage_event import UsageEvent, ResourceType
from app.schemas.billing import UsageEventCreate


class CRUDUsageEvent(CRUDBase[UsageEvent, UsageEventCreate, UsageEventCreate]):
    async def count_in_period(
        self,
        db: AsyncSession,
        user_id: str,
        resource_type: ResourceType,
        start: datetime,
        end: datetime
    ) -> int:
        """Number of usage events in [start, end)"""
        result = await db.execute(
            select(func.count(self.model.id)).where(
                and_(
                    self.model.supabase_user_id == user_id,
                    self.model.resource_type == resource_type,
                    self.model.created_at >= start,
                    self.model.created_at < end
                )
            )
        )
        return result.scalar() or 0

    async def count_by_type_in_period(
        self,
        db: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime
    ) -> Dict[ResourceType, int]:
        """Usage events in [start, end) grouped by resource type"""
        result = await db.execute(
            select(self.model.resource_type, func.count(self.model.id))
            .where(
                and_(
                    self.model.supabase_user_id == user_id,
                    self.model.created_at >= start,
                    self.model.created_at < end
                )
            )
            .group_by(self.model.resource_type)
        )
        return {resource_type: count for resource_type, count in result.all()}

    async def get_by_diagnostic_id(self, db: AsyncSession, diagnostic_id: UUID) -> Optional[UsageEvent]:
        result = await db.execute(
            select(self.model).where(self.model.diagnostic_id == diagnostic_id)
        )
        return result.scalar_one_or_none()


usage_event = CRUDUsageEvent(UsageEvent)
