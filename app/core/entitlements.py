"""
Plan entitlements.

Monthly allowances per diagnostic type and the absolute property capacity for
each subscription tier. A zero allowance means the feature is locked on that
tier, not merely used up. Changing these numbers is a deploy, not a runtime
operation.
"""
from types import MappingProxyType
from typing import Mapping, Optional

from app.core.config import settings
from app.models.usage_event import ResourceType
from app.models.user_subscription import SubscriptionTier


USAGE_LIMITS: Mapping[SubscriptionTier, Mapping[ResourceType, int]] = MappingProxyType({
    SubscriptionTier.FREE: MappingProxyType({
        ResourceType.PHOTO: 2,
        ResourceType.VIDEO: 0,
        ResourceType.AUDIO: 1,
        ResourceType.TEXT: 5,
    }),
    SubscriptionTier.PRO: MappingProxyType({
        ResourceType.PHOTO: 30,
        ResourceType.VIDEO: 5,
        ResourceType.AUDIO: 20,
        ResourceType.TEXT: 100,
    }),
    SubscriptionTier.BUSINESS: MappingProxyType({
        ResourceType.PHOTO: 200,
        ResourceType.VIDEO: 25,
        ResourceType.AUDIO: 75,
        ResourceType.TEXT: 500,
    }),
})

PROPERTY_CAPACITY: Mapping[SubscriptionTier, int] = MappingProxyType({
    SubscriptionTier.FREE: 1,
    SubscriptionTier.PRO: 5,
    SubscriptionTier.BUSINESS: 30,
})


def limit(tier: SubscriptionTier, resource_type: ResourceType) -> int:
    """Allowance for a resource type on a tier. 0 means locked."""
    if resource_type is ResourceType.PROPERTY:
        return property_capacity(tier)
    return USAGE_LIMITS[tier][resource_type]


def property_capacity(tier: SubscriptionTier) -> int:
    return PROPERTY_CAPACITY[tier]


def plan_price(tier: SubscriptionTier) -> Optional[int]:
    """Checkout price for one billing cycle in minor currency units, None for free"""
    if tier is SubscriptionTier.PRO:
        return settings.pro_price_cents
    if tier is SubscriptionTier.BUSINESS:
        return settings.business_price_cents
    return None
