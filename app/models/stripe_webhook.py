from sqlalchemy import Column, String, DateTime
from sqlalchemy.dialects.postgresql import UUID
import uuid
from .base import Base, TimestampMixin


class StripeWebhook(Base, TimestampMixin):
    __tablename__ = "stripe_webhooks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    # Stripe event id for idempotency
    event_id = Column(String(255), nullable=False, unique=True, index=True)
    event_type = Column(String(100), nullable=False)

    # Checkout session id, matches payment_transactions.reference
    reference = Column(String(255), nullable=True, index=True)

    # Audit of webhook handling
    outcome = Column(String(50), nullable=True)  # success | failed | ignored | unknown_reference
    webhook_timestamp = Column(DateTime, nullable=True)  # when processed locally
