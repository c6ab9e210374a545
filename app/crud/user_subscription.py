from typing import Any, List, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, update
from sqlalchemy.exc import IntegrityError

from app.crud.base import CRUDBase
from app.models.user_subscription import UserSubscription, SubscriptionStatus, SubscriptionTier
from app.schemas.billing import UserSubscriptionCreate, UserSubscriptionUpdate


class CRUDUserSubscription(CRUDBase[UserSubscription, UserSubscriptionCreate, UserSubscriptionUpdate]):
    async def get_by_supabase_user_id(self, db: AsyncSession, user_id: str) -> Optional[UserSubscription]:
        """Get the subscription row of a user"""
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.supabase_user_id == user_id,
                    self.model.is_deleted == False
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, db: AsyncSession, obj_in: UserSubscriptionCreate) -> UserSubscription:
        """Get the user's subscription, creating the signup row if there is none.

        Concurrent first requests race on the unique user column; the loser
        reads the winner's row.
        """
        existing = await self.get_by_supabase_user_id(db, obj_in.supabase_user_id)
        if existing:
            return existing
        try:
            return await self.create(db, obj_in=obj_in)
        except IntegrityError:
            await db.rollback()
            existing = await self.get_by_supabase_user_id(db, obj_in.supabase_user_id)
            if existing is None:
                raise
            return existing

    async def lock_for_user(self, db: AsyncSession, user_id: str, now: datetime) -> int:
        """Take the per-user write lock inside the caller's transaction.

        The touch is a write so it serializes on the row lock in Postgres and on
        the database write lock in SQLite. Caller commits.
        """
        result = await db.execute(
            update(self.model)
            .where(self.model.supabase_user_id == user_id)
            .values(updated_at=now)
        )
        return result.rowcount

    async def apply_paid_period(
        self,
        db: AsyncSession,
        user_id: str,
        tier: SubscriptionTier,
        period_start: datetime,
        period_end: datetime,
        reference: str
    ) -> int:
        """Switch a user to a paid tier for a fresh billing period. Caller commits."""
        result = await db.execute(
            update(self.model)
            .where(self.model.supabase_user_id == user_id)
            .values(
                tier=tier,
                status=SubscriptionStatus.ACTIVE,
                period_start=period_start,
                period_end=period_end,
                renewal_reference=reference,
                cancelled_at=None,
                updated_at=period_start
            )
        )
        return result.rowcount

    async def get_lapsed(self, db: AsyncSession, now: datetime) -> List[UserSubscription]:
        """Paid subscriptions whose period has ended and that are not already past due"""
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.tier != SubscriptionTier.FREE,
                    self.model.status != SubscriptionStatus.PAST_DUE,
                    self.model.period_end <= now,
                    self.model.is_deleted == False
                )
            )
        )
        return list(result.scalars().all())

    async def update_if_unchanged(
        self,
        db: AsyncSession,
        subscription_id: Any,
        expected_status: SubscriptionStatus,
        expected_period_end: datetime,
        **values
    ) -> bool:
        """Apply values only if status and period_end are what the caller read. Caller commits."""
        result = await db.execute(
            update(self.model)
            .where(
                and_(
                    self.model.id == subscription_id,
                    self.model.status == expected_status,
                    self.model.period_end == expected_period_end
                )
            )
            .values(**values)
        )
        return result.rowcount == 1


user_subscription = CRUDUserSubscription(UserSubscription)
