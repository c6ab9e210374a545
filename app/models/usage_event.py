from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from .base import Base
from .user_subscription import SubscriptionTier

class ResourceType(str, enum.Enum):
    """Metered resource types"""
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    TEXT = "text"
    PROPERTY = "property"

    @property
    def is_diagnostic(self) -> bool:
        return self is not ResourceType.PROPERTY

DIAGNOSTIC_RESOURCE_TYPES = tuple(rt for rt in ResourceType if rt.is_diagnostic)

class UsageEvent(Base):
    """Append-only record of one committed diagnostic consumption"""
    __tablename__ = "usage_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    supabase_user_id = Column(String, nullable=False, index=True)
    resource_type = Column(SQLEnum(ResourceType), nullable=False)
    # One event per diagnostic at most
    diagnostic_id = Column(UUID(as_uuid=True), ForeignKey("diagnostics.id"), nullable=False, unique=True)
    tier_at_time = Column(SQLEnum(SubscriptionTier), nullable=False)
    created_at = Column(DateTime, nullable=False, index=True)
