from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core import entitlements
from app.crud import property_crud
from app.models.usage_event import ResourceType, DIAGNOSTIC_RESOURCE_TYPES
from app.models.user_subscription import SubscriptionTier, UserSubscription
from app.schemas.billing import EntitlementResponse, UsageSummaryResponse
from app.services.subscription_sync_service import subscription_sync_service
from app.services.usage_ledger import usage_ledger, current_period, effective_tier
from app.utils.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entitlement:
    """Quota decision for one user and resource type"""
    resource_type: ResourceType
    tier: SubscriptionTier
    locked: bool
    at_limit: bool
    can_use: bool
    used: int
    limit: int
    remaining: int
    period_end: Optional[datetime] = None

    def to_response(self) -> EntitlementResponse:
        return EntitlementResponse(
            resource_type=self.resource_type,
            tier=self.tier,
            locked=self.locked,
            at_limit=self.at_limit,
            can_use=self.can_use,
            used=self.used,
            limit=self.limit,
            remaining=self.remaining,
            period_end=self.period_end,
        )


def evaluate_quota(
    resource_type: ResourceType,
    tier: SubscriptionTier,
    limit: int,
    used: int,
    period_end: Optional[datetime] = None
) -> Entitlement:
    """Pure quota decision. A zero limit is locked, which is not the same as used up."""
    locked = limit == 0
    at_limit = used >= limit
    return Entitlement(
        resource_type=resource_type,
        tier=tier,
        locked=locked,
        at_limit=at_limit,
        can_use=not locked and not at_limit,
        used=used,
        limit=limit,
        remaining=max(0, limit - used),
        period_end=period_end,
    )


class QuotaService:
    """Advisory entitlement checks for UI display and early rejection.

    Nothing here reserves quota; the authoritative check is the conditional
    write in the usage ledger.
    """

    async def evaluate_for_subscription(
        self,
        db: AsyncSession,
        subscription: UserSubscription,
        resource_type: ResourceType,
        now: datetime
    ) -> Entitlement:
        tier = effective_tier(subscription, now)
        user_id = subscription.supabase_user_id

        if resource_type is ResourceType.PROPERTY:
            used = await property_crud.count_active(db, user_id)
            return evaluate_quota(resource_type, tier, entitlements.property_capacity(tier), used)

        limit = entitlements.limit(tier, resource_type)
        period = current_period(subscription, now)
        if limit == 0:
            return evaluate_quota(resource_type, tier, 0, 0, period_end=period[1])

        used = await usage_ledger.count_in_period(db, user_id, resource_type, period)
        return evaluate_quota(resource_type, tier, limit, used, period_end=period[1])

    async def evaluate(
        self,
        db: AsyncSession,
        user_id: str,
        resource_type: ResourceType,
        now: Optional[datetime] = None
    ) -> Entitlement:
        now = now or utcnow()
        subscription = await subscription_sync_service.get_or_create_subscription(db, user_id, now)
        return await self.evaluate_for_subscription(db, subscription, resource_type, now)

    async def usage_summary(
        self,
        db: AsyncSession,
        user_id: str,
        now: Optional[datetime] = None
    ) -> UsageSummaryResponse:
        """Every resource type for the current period in one pass"""
        now = now or utcnow()
        subscription = await subscription_sync_service.get_or_create_subscription(db, user_id, now)
        tier = effective_tier(subscription, now)
        start, end = current_period(subscription, now)
        counts = await usage_ledger.counts_by_type(db, user_id, (start, end))

        usage: Dict[str, EntitlementResponse] = {}
        for resource_type in DIAGNOSTIC_RESOURCE_TYPES:
            decision = evaluate_quota(
                resource_type,
                tier,
                entitlements.limit(tier, resource_type),
                counts.get(resource_type, 0),
                period_end=end,
            )
            usage[resource_type.value] = decision.to_response()

        properties = await property_crud.count_active(db, user_id)
        usage[ResourceType.PROPERTY.value] = evaluate_quota(
            ResourceType.PROPERTY, tier, entitlements.property_capacity(tier), properties
        ).to_response()

        return UsageSummaryResponse(
            tier=tier,
            status=subscription.status,
            period_start=start,
            period_end=end,
            usage=usage,
        )


# Create singleton instance
quota_service = QuotaService()
