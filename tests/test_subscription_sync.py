# ruff: noqa: S101
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from dateutil.relativedelta import relativedelta

from app.crud import user_subscription
from app.models.usage_event import ResourceType
from app.models.user_subscription import SubscriptionStatus, SubscriptionTier
from app.schemas.billing import VerifyOutcome
from app.services.quota_service import quota_service
from app.services.stripe_service import StripeService
from app.services.subscription_sync_service import subscription_sync_service
from tests.conftest import FakeGateway

T0 = datetime(2026, 3, 1, 12, 0, 0)


async def _pay(db, gateway: FakeGateway, user_id: str, tier: SubscriptionTier, now: datetime) -> str:
    checkout = await subscription_sync_service.initialize_checkout(
        db, user_id=user_id, email=None, tier=tier, gateway=gateway, now=now
    )
    gateway.outcomes[checkout.reference] = "success"
    result = await subscription_sync_service.verify(db, checkout.reference, gateway, user_id=user_id, now=now)
    assert result.status == VerifyOutcome.SUCCESS
    return checkout.reference


@pytest.mark.asyncio
async def test_signup_row_is_free_with_a_rolling_period(db) -> None:
    subscription = await subscription_sync_service.get_or_create_subscription(db, "fresh", T0)

    assert subscription.tier == SubscriptionTier.FREE
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.period_start == T0
    assert subscription.period_end == T0 + timedelta(days=30)

    again = await subscription_sync_service.get_or_create_subscription(db, "fresh", T0 + timedelta(days=3))
    assert again.id == subscription.id


@pytest.mark.asyncio
async def test_successful_payment_starts_a_calendar_month(db, gateway: FakeGateway) -> None:
    reference = await _pay(db, gateway, "payer", SubscriptionTier.PRO, T0)

    subscription = await user_subscription.get_by_supabase_user_id(db, "payer")
    await db.refresh(subscription)
    assert subscription.tier == SubscriptionTier.PRO
    assert subscription.period_start == T0
    assert subscription.period_end == T0 + relativedelta(months=1)
    assert subscription.renewal_reference == reference


@pytest.mark.asyncio
async def test_cancelled_plan_runs_to_period_end_then_drops_to_free(db, gateway: FakeGateway) -> None:
    await _pay(db, gateway, "leaver", SubscriptionTier.PRO, T0)
    period_end = T0 + relativedelta(months=1)

    cancelled = await subscription_sync_service.cancel(db, "leaver", now=T0 + timedelta(days=10))
    assert cancelled.subscription.status == SubscriptionStatus.CANCELLED
    assert cancelled.subscription.tier == SubscriptionTier.PRO

    before_end = await quota_service.evaluate(db, "leaver", ResourceType.PHOTO, period_end - timedelta(days=1))
    assert before_end.tier == SubscriptionTier.PRO
    assert before_end.limit == 30

    after_end = await quota_service.evaluate(db, "leaver", ResourceType.PHOTO, period_end + timedelta(seconds=1))
    assert after_end.tier == SubscriptionTier.FREE
    assert after_end.limit == 2
    video = await quota_service.evaluate(db, "leaver", ResourceType.VIDEO, period_end + timedelta(seconds=1))
    assert video.locked is True


@pytest.mark.asyncio
async def test_expiry_job_downgrades_cancelled_and_flags_unpaid(db, gateway: FakeGateway) -> None:
    await _pay(db, gateway, "cancelled-user", SubscriptionTier.PRO, T0)
    await _pay(db, gateway, "lapsed-user", SubscriptionTier.BUSINESS, T0)
    await _pay(db, gateway, "current-user", SubscriptionTier.PRO, T0 + timedelta(days=20))
    await subscription_sync_service.cancel(db, "cancelled-user", now=T0 + timedelta(days=5))

    old_end = T0 + relativedelta(months=1)
    result = await subscription_sync_service.expire_lapsed(db, now=old_end + timedelta(hours=1))

    assert result.downgraded == 1
    assert result.marked_past_due == 1

    downgraded = await user_subscription.get_by_supabase_user_id(db, "cancelled-user")
    await db.refresh(downgraded)
    assert downgraded.tier == SubscriptionTier.FREE
    assert downgraded.status == SubscriptionStatus.ACTIVE
    assert downgraded.period_start == old_end
    assert downgraded.cancelled_at is None

    lapsed = await user_subscription.get_by_supabase_user_id(db, "lapsed-user")
    await db.refresh(lapsed)
    assert lapsed.status == SubscriptionStatus.PAST_DUE
    decision = await quota_service.evaluate(db, "lapsed-user", ResourceType.VIDEO, old_end + timedelta(hours=2))
    assert decision.locked is True

    current = await user_subscription.get_by_supabase_user_id(db, "current-user")
    await db.refresh(current)
    assert current.status == SubscriptionStatus.ACTIVE
    assert current.tier == SubscriptionTier.PRO

    # Running the job again finds nothing left to do
    rerun = await subscription_sync_service.expire_lapsed(db, now=old_end + timedelta(hours=3))
    assert (rerun.downgraded, rerun.marked_past_due) == (0, 0)


@pytest.mark.asyncio
async def test_renewal_clears_past_due(db, gateway: FakeGateway) -> None:
    await _pay(db, gateway, "late", SubscriptionTier.PRO, T0)
    old_end = T0 + relativedelta(months=1)
    await subscription_sync_service.expire_lapsed(db, now=old_end + timedelta(days=1))

    await _pay(db, gateway, "late", SubscriptionTier.PRO, old_end + timedelta(days=2))

    subscription = await user_subscription.get_by_supabase_user_id(db, "late")
    await db.refresh(subscription)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.tier == SubscriptionTier.PRO


def test_checkout_session_outcome_mapping() -> None:
    assert StripeService._session_outcome({"payment_status": "paid", "status": "complete"}) == "success"
    assert StripeService._session_outcome({"payment_status": "unpaid", "status": "expired"}) == "failed"
    assert StripeService._session_outcome({"payment_status": "unpaid", "status": "open"}) == "pending"


def test_webhook_events_are_reduced_to_outcomes(gateway: FakeGateway) -> None:
    completed_async = (
        b'{"id": "evt_9", "type": "checkout.session.completed",'
        b' "data": {"object": {"id": "cs_9", "payment_status": "unpaid", "status": "complete"}}}'
    )
    parsed = gateway.parse_webhook_event(completed_async, FakeGateway.VALID_SIGNATURE)
    assert parsed["success"] is True
    assert parsed["reference"] == "cs_9"
    assert parsed["outcome"] == "pending"

    failed = gateway.parse_webhook_event(
        b'{"id": "evt_10", "type": "checkout.session.async_payment_failed", "data": {"object": {"id": "cs_10"}}}',
        FakeGateway.VALID_SIGNATURE,
    )
    assert failed["outcome"] == "failed"

    assert gateway.parse_webhook_event(b"{}", "forged")["success"] is False
