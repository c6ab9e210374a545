# ruff: noqa: S101
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from app.core import entitlements
from app.models.usage_event import ResourceType
from app.models.user_subscription import SubscriptionStatus, SubscriptionTier, UserSubscription
from app.services.quota_service import evaluate_quota
from app.services.usage_ledger import current_period, effective_tier

T0 = datetime(2026, 3, 1, 12, 0, 0)


def _subscription(
    tier: SubscriptionTier = SubscriptionTier.FREE,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    start: datetime = T0,
    days: int = 30,
) -> UserSubscription:
    return UserSubscription(
        supabase_user_id="user-1",
        tier=tier,
        status=status,
        period_start=start,
        period_end=start + timedelta(days=days),
    )


def test_free_plan_allowances() -> None:
    assert entitlements.limit(SubscriptionTier.FREE, ResourceType.PHOTO) == 2
    assert entitlements.limit(SubscriptionTier.FREE, ResourceType.VIDEO) == 0
    assert entitlements.limit(SubscriptionTier.FREE, ResourceType.AUDIO) == 1
    assert entitlements.limit(SubscriptionTier.FREE, ResourceType.TEXT) == 5


def test_paid_plans_unlock_video_and_raise_photo_allowance() -> None:
    assert entitlements.limit(SubscriptionTier.PRO, ResourceType.PHOTO) == 30
    assert entitlements.limit(SubscriptionTier.PRO, ResourceType.VIDEO) > 0
    assert entitlements.limit(SubscriptionTier.BUSINESS, ResourceType.VIDEO) > entitlements.limit(
        SubscriptionTier.PRO, ResourceType.VIDEO
    )


def test_property_limit_is_the_tier_capacity() -> None:
    for tier in SubscriptionTier:
        assert entitlements.limit(tier, ResourceType.PROPERTY) == entitlements.property_capacity(tier)
    assert entitlements.property_capacity(SubscriptionTier.FREE) == 1


def test_catalog_is_read_only() -> None:
    with pytest.raises(TypeError):
        entitlements.USAGE_LIMITS[SubscriptionTier.FREE][ResourceType.PHOTO] = 100  # type: ignore[index]


def test_only_paid_plans_have_a_price() -> None:
    assert entitlements.plan_price(SubscriptionTier.FREE) is None
    assert entitlements.plan_price(SubscriptionTier.PRO) > 0
    assert entitlements.plan_price(SubscriptionTier.BUSINESS) > entitlements.plan_price(SubscriptionTier.PRO)


def test_zero_limit_is_locked_not_exhausted() -> None:
    decision = evaluate_quota(ResourceType.VIDEO, SubscriptionTier.FREE, limit=0, used=0)
    assert decision.locked is True
    assert decision.can_use is False
    assert decision.remaining == 0


def test_limit_reached_is_not_locked() -> None:
    decision = evaluate_quota(ResourceType.PHOTO, SubscriptionTier.FREE, limit=2, used=2)
    assert decision.locked is False
    assert decision.at_limit is True
    assert decision.can_use is False
    assert decision.remaining == 0


def test_remaining_never_goes_negative() -> None:
    decision = evaluate_quota(ResourceType.PHOTO, SubscriptionTier.FREE, limit=2, used=5)
    assert decision.remaining == 0
    assert decision.at_limit is True


def test_under_limit_can_use() -> None:
    decision = evaluate_quota(ResourceType.TEXT, SubscriptionTier.FREE, limit=5, used=3)
    assert decision.can_use is True
    assert decision.remaining == 2


def test_current_period_inside_stored_window() -> None:
    subscription = _subscription()
    assert current_period(subscription, T0 + timedelta(days=3)) == (T0, T0 + timedelta(days=30))


def test_current_period_rolls_forward_by_whole_cycles() -> None:
    subscription = _subscription()
    start, end = current_period(subscription, T0 + timedelta(days=65))
    assert start == T0 + timedelta(days=60)
    assert end == T0 + timedelta(days=90)


def test_current_period_boundary_belongs_to_next_window() -> None:
    subscription = _subscription()
    start, _ = current_period(subscription, T0 + timedelta(days=30))
    assert start == T0 + timedelta(days=30)


def test_paid_tier_applies_until_period_end_even_when_cancelled() -> None:
    subscription = _subscription(SubscriptionTier.PRO, SubscriptionStatus.CANCELLED)
    assert effective_tier(subscription, T0 + timedelta(days=29)) == SubscriptionTier.PRO
    assert effective_tier(subscription, T0 + timedelta(days=30)) == SubscriptionTier.FREE


def test_past_due_falls_back_to_free() -> None:
    subscription = _subscription(SubscriptionTier.BUSINESS, SubscriptionStatus.PAST_DUE)
    assert effective_tier(subscription, T0 + timedelta(days=1)) == SubscriptionTier.FREE
