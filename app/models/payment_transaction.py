from sqlalchemy import Column, String, Integer, DateTime, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from .base import Base, TimestampMixin
from .user_subscription import SubscriptionTier

class TransactionStatus(str, enum.Enum):
    INITIATED = "initiated"
    SUCCESS = "success"
    FAILED = "failed"

class PaymentTransaction(Base, TimestampMixin):
    """A checkout attempt. The provider reference is the idempotency key for verification."""
    __tablename__ = "payment_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    reference = Column(String(255), nullable=False, unique=True, index=True)  # Stripe checkout session id
    supabase_user_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Minor currency units
    currency = Column(String(10), nullable=False)
    tier_requested = Column(SQLEnum(SubscriptionTier), nullable=False)
    status = Column(SQLEnum(TransactionStatus), default=TransactionStatus.INITIATED, nullable=False)
    checkout_url = Column(String(1000), nullable=True)
    verified_at = Column(DateTime, nullable=True)
