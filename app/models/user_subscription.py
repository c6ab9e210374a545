from sqlalchemy import Column, String, DateTime, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from .base import Base, TimestampMixin

class SubscriptionTier(str, enum.Enum):
    """Subscription plans, cheapest first"""
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"

class SubscriptionStatus(str, enum.Enum):
    """Subscription status enum"""
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"

class UserSubscription(Base, TimestampMixin):
    """Current plan and billing cycle of a user. Written only by the subscription sync service."""
    __tablename__ = "user_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    supabase_user_id = Column(String, nullable=False, unique=True, index=True)  # References user in Supabase
    tier = Column(SQLEnum(SubscriptionTier), default=SubscriptionTier.FREE, nullable=False)
    status = Column(SQLEnum(SubscriptionStatus), default=SubscriptionStatus.ACTIVE, nullable=False)
    period_start = Column(DateTime, nullable=False)  # Billing cycle start (UTC)
    period_end = Column(DateTime, nullable=False)  # Billing cycle end, exclusive (UTC)
    renewal_reference = Column(String(255), nullable=True)  # Payment reference that set the current period
    cancelled_at = Column(DateTime, nullable=True)
