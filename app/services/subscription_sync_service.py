from datetime import datetime, timedelta
from typing import Optional
import logging

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import entitlements
from app.core.config import settings
from app.core.exceptions import PaymentProviderError, ValidationError
from app.crud import payment_transaction_crud, stripe_webhook_crud, user_subscription
from app.crud.stripe_webhook import StripeWebhookCreate
from app.models.payment_transaction import TransactionStatus
from app.models.user_subscription import SubscriptionStatus, SubscriptionTier, UserSubscription
from app.schemas.admin import ExpireSubscriptionsResponse
from app.schemas.billing import (
    CancelSubscriptionResponse,
    CheckoutResponse,
    PaymentTransactionCreate,
    UserSubscriptionCreate,
    UserSubscriptionResponse,
    UserSubscriptionUpdate,
    VerifyOutcome,
    VerifyResponse,
    WebhookAck
)
from app.services.stripe_service import StripeService
from app.services.usage_ledger import effective_tier
from app.utils.utils import utcnow

logger = logging.getLogger(__name__)


class SubscriptionSyncService:
    """Keeps user_subscriptions in step with payments.

    The only writer of subscription rows. Every payment outcome is applied
    through a conditional status change on the transaction, so repeated
    verifications and webhook redeliveries of the same reference are no-ops.
    """

    async def get_or_create_subscription(
        self,
        db: AsyncSession,
        user_id: str,
        now: Optional[datetime] = None
    ) -> UserSubscription:
        """Subscription of a user, creating the free signup row on first access"""
        now = now or utcnow()
        return await user_subscription.get_or_create(
            db,
            UserSubscriptionCreate(
                supabase_user_id=user_id,
                tier=SubscriptionTier.FREE,
                status=SubscriptionStatus.ACTIVE,
                period_start=now,
                period_end=now + timedelta(days=settings.billing_cycle_days)
            )
        )

    async def initialize_checkout(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        email: Optional[str],
        tier: SubscriptionTier,
        gateway: StripeService,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CheckoutResponse:
        """Start a checkout for one billing cycle of a paid tier"""
        now = now or utcnow()
        amount = entitlements.plan_price(tier)
        if amount is None:
            raise ValidationError("The free plan does not need a checkout")

        subscription = await self.get_or_create_subscription(db, user_id, now)
        if subscription.status == SubscriptionStatus.ACTIVE and effective_tier(subscription, now) == tier:
            raise ValidationError(f"You are already on the {tier.value} plan")

        result = await gateway.create_checkout_session(
            user_id=user_id,
            email=email,
            tier=tier,
            amount=amount,
            currency=settings.billing_currency,
            success_url=success_url or f"{settings.frontend_url}/billing/success?reference={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{settings.frontend_url}/pricing"
        )
        if not result["success"]:
            logger.warning(f"⚠️ Checkout for user {user_id} ({tier.value}) failed: {result.get('error')}")
            raise PaymentProviderError("Could not start the checkout, please try again")

        await payment_transaction_crud.create(
            db,
            obj_in=PaymentTransactionCreate(
                reference=result["reference"],
                supabase_user_id=user_id,
                amount=amount,
                currency=settings.billing_currency,
                tier_requested=tier,
                checkout_url=result["checkout_url"]
            )
        )
        logger.info(f"💳 Checkout {result['reference']} started for user {user_id} ({tier.value})")
        return CheckoutResponse(checkout_url=result["checkout_url"], reference=result["reference"])

    async def _apply_outcome(
        self,
        db: AsyncSession,
        *,
        reference: str,
        user_id: str,
        tier: SubscriptionTier,
        outcome: VerifyOutcome,
        now: datetime
    ) -> VerifyOutcome:
        """Move an initiated transaction to its final state. Caller commits.

        Losing the conditional update means somebody else already settled the
        reference; their result is reported back unchanged.
        """
        if outcome == VerifyOutcome.PENDING:
            return VerifyOutcome.PENDING

        target = TransactionStatus.SUCCESS if outcome == VerifyOutcome.SUCCESS else TransactionStatus.FAILED
        changed = await payment_transaction_crud.transition(
            db, reference, TransactionStatus.INITIATED, target, verified_at=now
        )
        if not changed:
            current = await payment_transaction_crud.get_status(db, reference)
            logger.info(f"Payment {reference} already settled as {current.value if current else None}")
            return VerifyOutcome.SUCCESS if current == TransactionStatus.SUCCESS else VerifyOutcome.FAILED

        if target == TransactionStatus.SUCCESS:
            await user_subscription.apply_paid_period(
                db,
                user_id,
                tier,
                period_start=now,
                period_end=now + relativedelta(months=1),
                reference=reference
            )
            logger.info(f"✅ User {user_id} upgraded to {tier.value} by payment {reference}")
        else:
            logger.info(f"Payment {reference} for user {user_id} failed")
        return outcome

    async def verify(
        self,
        db: AsyncSession,
        reference: str,
        gateway: StripeService,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> VerifyResponse:
        """Confirm a checkout with the provider and apply it.

        Unknown references, and references belonging to someone other than
        user_id, report failed without touching anything.
        """
        now = now or utcnow()
        transaction = await payment_transaction_crud.get_by_reference(db, reference)
        if transaction is None or (user_id and transaction.supabase_user_id != user_id):
            logger.info(f"Verify of unknown reference {reference}")
            return VerifyResponse(status=VerifyOutcome.FAILED, reference=reference)

        owner = transaction.supabase_user_id
        tier = transaction.tier_requested
        if transaction.status == TransactionStatus.SUCCESS:
            return VerifyResponse(status=VerifyOutcome.SUCCESS, reference=reference, tier=tier)
        if transaction.status == TransactionStatus.FAILED:
            return VerifyResponse(status=VerifyOutcome.FAILED, reference=reference, tier=tier)

        result = await gateway.get_payment_outcome(reference)
        if not result["success"]:
            logger.warning(f"⚠️ Could not verify payment {reference}: {result.get('error')}")
            raise PaymentProviderError("Could not reach the payment provider, please retry")

        await self.get_or_create_subscription(db, owner, now)
        outcome = await self._apply_outcome(
            db,
            reference=reference,
            user_id=owner,
            tier=tier,
            outcome=VerifyOutcome(result["outcome"]),
            now=now
        )
        await db.commit()
        return VerifyResponse(status=outcome, reference=reference, tier=tier)

    async def handle_webhook(
        self,
        db: AsyncSession,
        payload: bytes,
        signature: Optional[str],
        gateway: StripeService,
        now: Optional[datetime] = None
    ) -> WebhookAck:
        """Apply a provider push notification.

        Each provider event is processed at most once; a redelivery is
        acknowledged as a duplicate and changes nothing.
        """
        now = now or utcnow()
        event = gateway.parse_webhook_event(payload, signature)
        if not event["success"]:
            logger.warning(f"⚠️ Rejected webhook: {event.get('error')}")
            raise ValidationError("Invalid webhook signature")

        event_id = event["event_id"]
        if not event_id:
            raise ValidationError("Webhook event has no id")
        if await stripe_webhook_crud.get_by_event_id(db, event_id):
            logger.info(f"Duplicate webhook {event_id} ignored")
            return WebhookAck(duplicate=True)

        reference = event["reference"]
        transaction = await payment_transaction_crud.get_by_reference(db, reference) if reference else None
        if event["outcome"] is None:
            audit_outcome = "ignored"
        elif transaction is None:
            audit_outcome = "unknown_reference"
        else:
            audit_outcome = event["outcome"]

        owner = transaction.supabase_user_id if transaction else None
        tier = transaction.tier_requested if transaction else None
        if owner:
            await self.get_or_create_subscription(db, owner, now)

        try:
            await stripe_webhook_crud.create(
                db,
                obj_in=StripeWebhookCreate(
                    event_id=event_id,
                    event_type=event["event_type"],
                    reference=reference,
                    outcome=audit_outcome,
                    webhook_timestamp=now
                ),
                commit=False
            )
        except IntegrityError:
            await db.rollback()
            logger.info(f"Duplicate webhook {event_id} ignored")
            return WebhookAck(duplicate=True)

        status = None
        if owner:
            status = await self._apply_outcome(
                db,
                reference=reference,
                user_id=owner,
                tier=tier,
                outcome=VerifyOutcome(event["outcome"]),
                now=now
            )
        await db.commit()
        return WebhookAck(status=status)

    async def cancel(
        self,
        db: AsyncSession,
        user_id: str,
        now: Optional[datetime] = None
    ) -> CancelSubscriptionResponse:
        """Stop renewal. The paid tier stays usable until the period ends."""
        now = now or utcnow()
        subscription = await self.get_or_create_subscription(db, user_id, now)
        if subscription.tier == SubscriptionTier.FREE:
            raise ValidationError("There is no paid subscription to cancel")

        if subscription.status != SubscriptionStatus.CANCELLED:
            subscription = await user_subscription.update(
                db,
                db_obj=subscription,
                obj_in=UserSubscriptionUpdate(status=SubscriptionStatus.CANCELLED, cancelled_at=now)
            )
            logger.info(f"Subscription of user {user_id} cancelled, {subscription.tier.value} until {subscription.period_end}")

        return CancelSubscriptionResponse(
            success=True,
            message=f"Your plan stays active until {subscription.period_end.date().isoformat()}",
            subscription=UserSubscriptionResponse.model_validate(subscription)
        )

    async def expire_lapsed(self, db: AsyncSession, now: Optional[datetime] = None) -> ExpireSubscriptionsResponse:
        """Periodic job: settle paid subscriptions whose period has ended.

        Cancelled ones go back to free with a new cycle starting where the paid
        one ended. Active ones that were not renewed become past due.
        """
        now = now or utcnow()
        downgraded = 0
        marked_past_due = 0
        lapsed = [
            (s.id, s.supabase_user_id, s.status, s.period_end)
            for s in await user_subscription.get_lapsed(db, now)
        ]

        for subscription_id, user_id, status, period_end in lapsed:
            if status == SubscriptionStatus.CANCELLED:
                changed = await user_subscription.update_if_unchanged(
                    db,
                    subscription_id,
                    status,
                    period_end,
                    tier=SubscriptionTier.FREE,
                    status=SubscriptionStatus.ACTIVE,
                    period_start=period_end,
                    period_end=period_end + timedelta(days=settings.billing_cycle_days),
                    cancelled_at=None,
                    updated_at=now
                )
                downgraded += int(changed)
            else:
                changed = await user_subscription.update_if_unchanged(
                    db,
                    subscription_id,
                    status,
                    period_end,
                    status=SubscriptionStatus.PAST_DUE,
                    updated_at=now
                )
                marked_past_due += int(changed)
            if not changed:
                logger.info(f"Subscription of user {user_id} changed while expiring, skipped")

        await db.commit()
        if downgraded or marked_past_due:
            logger.info(f"Expired subscriptions: {downgraded} downgraded, {marked_past_due} past due")
        return ExpireSubscriptionsResponse(downgraded=downgraded, marked_past_due=marked_past_due)


# Create singleton instance
subscription_sync_service = SubscriptionSyncService()
