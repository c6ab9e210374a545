from typing import Optional
from datetime import datetime
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, update

from app.models.usage_counter import UsageCounter
from app.models.usage_event import ResourceType


class CRUDUsageCounter:
    def __init__(self, model=UsageCounter):
        self.model = model

    async def get_for_period(
        self,
        db: AsyncSession,
        user_id: str,
        resource_type: ResourceType,
        period_start: datetime
    ) -> Optional[UsageCounter]:
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.supabase_user_id == user_id,
                    self.model.resource_type == resource_type,
                    self.model.period_start == period_start
                )
            )
        )
        return result.scalar_one_or_none()

    async def create_for_period(
        self,
        db: AsyncSession,
        user_id: str,
        resource_type: ResourceType,
        period_start: datetime,
        period_end: datetime,
        count: int
    ) -> UsageCounter:
        """Insert and commit the counter row for a period.

        Raises IntegrityError when another request created it first.
        """
        counter = self.model(
            supabase_user_id=user_id,
            resource_type=resource_type,
            period_start=period_start,
            period_end=period_end,
            count=count
        )
        db.add(counter)
        await db.commit()
        return counter

    async def increment_if_below(self, db: AsyncSession, counter_id: UUID, limit: int) -> bool:
        """Atomically take one unit if the counter is still below limit.

        Single conditional UPDATE: concurrent callers serialize on the row and
        the loser re-evaluates the condition against the committed count.
        Caller commits.
        """
        result = await db.execute(
            update(self.model)
            .where(
                and_(
                    self.model.id == counter_id,
                    self.model.count < limit
                )
            )
            .values(count=self.model.count + 1)
        )
        return result.rowcount == 1

    async def get_count(self, db: AsyncSession, counter_id: UUID) -> int:
        result = await db.execute(select(self.model.count).where(self.model.id == counter_id))
        return result.scalar() or 0


usage_counter = CRUDUsageCounter()
