from sqlalchemy import Column, String, Text, Integer, JSON, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
import uuid
import enum
from .base import Base, TimestampMixin
from .usage_event import ResourceType

class DiagnosticStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

class Diagnostic(Base, TimestampMixin):
    __tablename__ = "diagnostics"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(String, nullable=False, index=True)
    resource_type = Column(SQLEnum(ResourceType), nullable=False)
    status = Column(SQLEnum(DiagnosticStatus), default=DiagnosticStatus.PENDING, nullable=False)
    payload_ref = Column(String(1000), nullable=True)  # Uploaded media location, owned by the storage service
    description = Column(Text, nullable=True)
    property_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    appliance_id = Column(String(64), nullable=True)

    # Analysis result
    diagnosis_summary = Column(Text, nullable=True)
    probable_causes = Column(JSON, nullable=True)
    estimated_cost_min = Column(Integer, nullable=True)
    estimated_cost_max = Column(Integer, nullable=True)
    urgency = Column(String(20), nullable=True)  # critical | warning | safe
    scam_alerts = Column(JSON, nullable=True)
    fix_instructions = Column(Text, nullable=True)

    failure_reason = Column(String(100), nullable=True)  # analysis_failed | limit_reached | locked | abandoned
