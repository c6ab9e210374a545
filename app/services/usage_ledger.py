"""
Usage ledger: billing-period arithmetic and the authoritative usage write.

Usage events are the source of truth; `usage_counters` is a per-period
aggregate of them that exists so the "is there still room?" check and the
write can be a single conditional UPDATE.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import CommitRaceError, DuplicateDiagnosticError
from app.crud import usage_counter, usage_event
from app.models.usage_counter import UsageCounter
from app.models.usage_event import ResourceType, UsageEvent
from app.models.user_subscription import SubscriptionStatus, SubscriptionTier, UserSubscription
from app.schemas.billing import UsageEventCreate

logger = logging.getLogger(__name__)

Period = Tuple[datetime, datetime]


def effective_tier(subscription: UserSubscription, now: datetime) -> SubscriptionTier:
    """Tier whose limits apply right now.

    Paid tiers are honoured through the end of the paid period, including after
    cancellation. Past due or lapsed subscriptions get free limits.
    """
    if subscription.tier == SubscriptionTier.FREE:
        return SubscriptionTier.FREE
    if subscription.status == SubscriptionStatus.PAST_DUE:
        return SubscriptionTier.FREE
    if now >= subscription.period_end:
        return SubscriptionTier.FREE
    return subscription.tier


def current_period(subscription: UserSubscription, now: datetime) -> Period:
    """The [start, end) quota window containing now.

    The stored period is rolled forward by whole cycles, so a subscription that
    nobody touched for months still lands on the right window.
    """
    start, end = subscription.period_start, subscription.period_end
    cycle = end - start
    if cycle <= timedelta(0):
        cycle = timedelta(days=settings.billing_cycle_days)
    if now < end:
        return start, end
    elapsed_cycles = (now - start) // cycle
    rolled_start = start + cycle * elapsed_cycles
    return rolled_start, rolled_start + cycle


class UsageLedger:
    """Reads and writes of per-period usage"""

    async def count_in_period(
        self,
        db: AsyncSession,
        user_id: str,
        resource_type: ResourceType,
        period: Period
    ) -> int:
        start, end = period
        return await usage_event.count_in_period(db, user_id, resource_type, start, end)

    async def counts_by_type(self, db: AsyncSession, user_id: str, period: Period) -> Dict[ResourceType, int]:
        start, end = period
        return await usage_event.count_by_type_in_period(db, user_id, start, end)

    async def _ensure_counter(
        self,
        db: AsyncSession,
        user_id: str,
        resource_type: ResourceType,
        period: Period
    ) -> UsageCounter:
        start, end = period
        counter = await usage_counter.get_for_period(db, user_id, resource_type, start)
        if counter:
            return counter

        seeded = await usage_event.count_in_period(db, user_id, resource_type, start, end)
        try:
            return await usage_counter.create_for_period(db, user_id, resource_type, start, end, seeded)
        except IntegrityError:
            # Another request opened the period first
            await db.rollback()
            counter = await usage_counter.get_for_period(db, user_id, resource_type, start)
            if counter is None:
                raise
            return counter

    async def commit(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        resource_type: ResourceType,
        diagnostic_id: UUID,
        tier: SubscriptionTier,
        limit: int,
        period: Period,
        now: datetime
    ) -> Tuple[UsageEvent, int]:
        """Record one unit of usage if the period still has room.

        Runs inside the caller's transaction and leaves the commit to the
        caller, so the event lands together with the diagnostic status change.
        Returns the event and the period count including it.

        Raises CommitRaceError when the period is already full and
        DuplicateDiagnosticError when the diagnostic was already charged.
        Storage contention is retried a bounded number of times; a full period
        is never retried.
        """
        attempts = max(1, settings.commit_max_retries)
        for attempt in range(1, attempts + 1):
            try:
                counter = await self._ensure_counter(db, user_id, resource_type, period)

                if await usage_event.get_by_diagnostic_id(db, diagnostic_id):
                    raise DuplicateDiagnosticError(str(diagnostic_id))

                if not await usage_counter.increment_if_below(db, counter.id, limit):
                    raise CommitRaceError(
                        f"{resource_type.value} allowance of {limit} already used for user {user_id}"
                    )

                try:
                    event = await usage_event.create(
                        db,
                        obj_in=UsageEventCreate(
                            supabase_user_id=user_id,
                            resource_type=resource_type,
                            diagnostic_id=diagnostic_id,
                            tier_at_time=tier,
                            created_at=now
                        ),
                        commit=False
                    )
                except IntegrityError:
                    await db.rollback()
                    raise DuplicateDiagnosticError(str(diagnostic_id))

                used = await usage_counter.get_count(db, counter.id)
                return event, used
            except OperationalError as e:
                await db.rollback()
                if attempt == attempts:
                    raise
                logger.warning(
                    f"⚠️ Usage commit contention for user {user_id} ({resource_type.value}), "
                    f"retry {attempt}/{attempts - 1}: {e}"
                )
                await asyncio.sleep(0.05 * attempt)

        raise RuntimeError("unreachable")


# Create singleton instance
usage_ledger = UsageLedger()
