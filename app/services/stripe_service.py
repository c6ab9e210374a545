import stripe
from app.core.config import settings
from app.models.user_subscription import SubscriptionTier
from typing import Optional, Dict, Any
import asyncio
import json
import logging

logger = logging.getLogger(__name__)

# Checkout session events that settle a payment one way or the other
SUCCESS_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
FAILURE_EVENTS = {"checkout.session.expired", "checkout.session.async_payment_failed"}


class StripeService:
    """Payment gateway adapter.

    One Stripe Checkout session pays for one billing cycle of a plan; the
    session id is the reference we key transactions on.
    """

    def __init__(self):
        if settings.stripe_secret:
            stripe.api_key = settings.stripe_secret
            self.webhook_secret = settings.stripe_webhook_secret
        else:
            # Don't raise exception during initialization, handle it in methods
            self.webhook_secret = None

    @staticmethod
    def _session_outcome(session: Any) -> str:
        """Map a checkout session to success | failed | pending"""
        payment_status = getattr(session, "payment_status", None) or session.get("payment_status")
        status = getattr(session, "status", None) or session.get("status")
        if payment_status in ("paid", "no_payment_required"):
            return "success"
        if status == "expired":
            return "failed"
        return "pending"

    async def create_checkout_session(
        self,
        *,
        user_id: str,
        email: Optional[str],
        tier: SubscriptionTier,
        amount: int,
        currency: str,
        success_url: str,
        cancel_url: str
    ) -> Dict[str, Any]:
        """Create a Stripe checkout session for one billing cycle of a plan"""
        if not settings.stripe_secret:
            return {
                "success": False,
                "error": "Stripe not configured"
            }
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount,
                        "product_data": {"name": f"{tier.value.capitalize()} plan - 1 month"},
                    },
                    "quantity": 1,
                }],
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=email or None,
                client_reference_id=user_id,
                metadata={"user_id": user_id, "tier": tier.value},
            )
            return {
                "success": True,
                "reference": session.id,
                "checkout_url": session.url
            }
        except Exception as e:
            logger.error(f"❌ Stripe checkout creation failed: {e}")
            return {
                "success": False,
                "error": str(e)
            }

    async def get_payment_outcome(self, reference: str) -> Dict[str, Any]:
        """Ask Stripe how the checkout session behind a reference ended"""
        if not settings.stripe_secret:
            return {
                "success": False,
                "error": "Stripe not configured"
            }
        try:
            session = await asyncio.to_thread(stripe.checkout.Session.retrieve, reference)
            return {
                "success": True,
                "outcome": self._session_outcome(session)
            }
        except Exception as e:
            logger.error(f"❌ Stripe session lookup failed for {reference}: {e}")
            return {
                "success": False,
                "error": str(e)
            }

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """Verify Stripe webhook signature"""
        if not self.webhook_secret or not signature:
            return False
        try:
            stripe.WebhookSignature.verify_header(payload.decode("utf-8"), signature, self.webhook_secret)
            return True
        except Exception as e:
            logger.warning(f"⚠️ Stripe signature check failed: {e}")
            return False

    def parse_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the webhook signature and reduce the event to what we act on.

        Returns {"success": False, "error": ...} on a bad signature or body.
        """
        if not self.verify_webhook_signature(payload, signature):
            return {
                "success": False,
                "error": "Invalid Stripe signature"
            }
        try:
            event = json.loads(payload)
        except ValueError as e:
            return {
                "success": False,
                "error": f"Malformed event body: {e}"
            }

        event_type = event.get("type", "")
        session = (event.get("data") or {}).get("object") or {}
        if event_type in SUCCESS_EVENTS:
            outcome = self._session_outcome(session)
        elif event_type in FAILURE_EVENTS:
            outcome = "failed"
        else:
            outcome = None

        return {
            "success": True,
            "event_id": event.get("id"),
            "event_type": event_type,
            "reference": session.get("id") if outcome else None,
            "outcome": outcome
        }


# Create a singleton instance
stripe_service = StripeService()


def get_payment_gateway() -> StripeService:
    """FastAPI dependency for the payment gateway"""
    return stripe_service
