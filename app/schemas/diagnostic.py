from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from app.models.diagnostic import DiagnosticStatus
from app.models.usage_event import ResourceType
from app.models.user_subscription import SubscriptionTier


class DiagnosticCreate(BaseModel):
    resource_type: ResourceType
    payload_ref: Optional[str] = Field(None, max_length=1000, description="Location of the uploaded media")
    description: Optional[str] = Field(None, max_length=5000)
    property_id: Optional[UUID] = None
    appliance_id: Optional[str] = Field(None, max_length=64)

    @field_validator("resource_type")
    @classmethod
    def must_be_diagnostic_type(cls, value: ResourceType) -> ResourceType:
        if not value.is_diagnostic:
            raise ValueError("resource_type must be one of photo, video, audio, text")
        return value


class DiagnosisResult(BaseModel):
    """Structured output of the analysis collaborator"""
    diagnosis_summary: str
    probable_causes: List[str] = []
    estimated_cost_min: Optional[int] = None
    estimated_cost_max: Optional[int] = None
    urgency: Optional[str] = None
    scam_alerts: List[str] = []
    fix_instructions: Optional[str] = None


class DiagnosticResponse(BaseModel):
    id: UUID
    resource_type: ResourceType
    status: DiagnosticStatus
    payload_ref: Optional[str] = None
    description: Optional[str] = None
    property_id: Optional[UUID] = None
    appliance_id: Optional[str] = None
    diagnosis_summary: Optional[str] = None
    probable_causes: Optional[List[str]] = None
    estimated_cost_min: Optional[int] = None
    estimated_cost_max: Optional[int] = None
    urgency: Optional[str] = None
    scam_alerts: Optional[List[str]] = None
    fix_instructions: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UsageSnapshot(BaseModel):
    used: int
    limit: int
    remaining: int
    tier: SubscriptionTier


class SubmitDiagnosticResponse(BaseModel):
    diagnostic_id: UUID
    diagnostic: DiagnosticResponse
    usage: UsageSnapshot


class GetDiagnosticsResponse(BaseModel):
    success: bool
    diagnostics: List[DiagnosticResponse]
    total_count: int
