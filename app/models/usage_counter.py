from sqlalchemy import Column, String, Integer, DateTime, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
import uuid
from .base import Base
from .usage_event import ResourceType

class UsageCounter(Base):
    """Materialized count of usage events per (user, resource type, period).

    Rows are historical facts: a counter keeps its own window even after the
    subscription period moves on, and count only ever goes up.
    """
    __tablename__ = "usage_counters"
    __table_args__ = (
        UniqueConstraint("supabase_user_id", "resource_type", "period_start", name="uq_usage_counter_period"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    supabase_user_id = Column(String, nullable=False, index=True)
    resource_type = Column(SQLEnum(ResourceType), nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    count = Column(Integer, default=0, nullable=False)
