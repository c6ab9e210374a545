from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from uuid import UUID
from enum import Enum

from app.models.user_subscription import SubscriptionTier, SubscriptionStatus
from app.models.usage_event import ResourceType
from app.models.payment_transaction import TransactionStatus


class VerifyOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


# User Subscription Schemas
class UserSubscriptionCreate(BaseModel):
    supabase_user_id: str
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    period_start: datetime
    period_end: datetime

class UserSubscriptionUpdate(BaseModel):
    tier: Optional[SubscriptionTier] = None
    status: Optional[SubscriptionStatus] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    renewal_reference: Optional[str] = None
    cancelled_at: Optional[datetime] = None

class UserSubscriptionResponse(BaseModel):
    id: UUID
    supabase_user_id: str
    tier: SubscriptionTier
    status: SubscriptionStatus
    period_start: datetime
    period_end: datetime
    renewal_reference: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SubscriptionOverviewResponse(BaseModel):
    """Stored subscription plus what it currently entitles the user to"""
    subscription: UserSubscriptionResponse
    effective_tier: SubscriptionTier
    current_period_start: datetime
    current_period_end: datetime


# Entitlement Schemas
class EntitlementResponse(BaseModel):
    resource_type: ResourceType
    tier: SubscriptionTier
    locked: bool
    at_limit: bool
    can_use: bool
    used: int
    limit: int
    remaining: int
    period_end: Optional[datetime] = Field(None, description="When the allowance resets, None for property capacity")

class UsageSummaryResponse(BaseModel):
    tier: SubscriptionTier
    status: SubscriptionStatus
    period_start: datetime
    period_end: datetime
    usage: Dict[str, EntitlementResponse]


# Usage Event Schemas
class UsageEventCreate(BaseModel):
    supabase_user_id: str
    resource_type: ResourceType
    diagnostic_id: UUID
    tier_at_time: SubscriptionTier
    created_at: datetime

# Payment Schemas
class CheckoutRequest(BaseModel):
    tier: SubscriptionTier
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None

class CheckoutResponse(BaseModel):
    checkout_url: str
    reference: str

class VerifyRequest(BaseModel):
    reference: str = Field(..., min_length=1, max_length=255)

class VerifyResponse(BaseModel):
    status: VerifyOutcome
    reference: str
    tier: Optional[SubscriptionTier] = None

class PaymentTransactionCreate(BaseModel):
    reference: str
    supabase_user_id: str
    amount: int
    currency: str
    tier_requested: SubscriptionTier
    checkout_url: Optional[str] = None

class PaymentTransactionResponse(BaseModel):
    id: UUID
    reference: str
    amount: int
    currency: str
    tier_requested: SubscriptionTier
    status: TransactionStatus
    created_at: datetime
    verified_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class GetTransactionsResponse(BaseModel):
    success: bool
    transactions: List[PaymentTransactionResponse]
    total_count: int

class CancelSubscriptionResponse(BaseModel):
    success: bool
    message: str
    subscription: UserSubscriptionResponse

class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    status: Optional[VerifyOutcome] = None


# Catalog Schemas
class PlanResponse(BaseModel):
    tier: SubscriptionTier
    price: Optional[int] = Field(None, description="Price per billing cycle in minor currency units, None for free")
    currency: str
    limits: Dict[str, int]
    property_capacity: int
