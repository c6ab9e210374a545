from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.schemas.auth import TokenData
from app.schemas.billing import (
    CancelSubscriptionResponse,
    CheckoutRequest,
    CheckoutResponse,
    EntitlementResponse,
    GetTransactionsResponse,
    PaymentTransactionResponse,
    PlanResponse,
    SubscriptionOverviewResponse,
    UsageSummaryResponse,
    UserSubscriptionResponse,
    VerifyRequest,
    VerifyResponse,
    WebhookAck
)
from app.core import entitlements
from app.core.auth import get_current_user
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import handle_database_errors
from app.crud import payment_transaction_crud
from app.models.usage_event import ResourceType
from app.models.user_subscription import SubscriptionTier
from app.services.quota_service import quota_service
from app.services.stripe_service import StripeService, get_payment_gateway
from app.services.subscription_sync_service import subscription_sync_service
from app.services.usage_ledger import current_period, effective_tier
from app.utils.utils import utcnow

router = APIRouter()


@router.get("/plans", response_model=List[PlanResponse])
async def get_plans():
    """Public plan catalog: price, monthly allowances and property capacity per tier"""
    return [
        PlanResponse(
            tier=tier,
            price=entitlements.plan_price(tier),
            currency=settings.billing_currency,
            limits={rt.value: limit for rt, limit in entitlements.USAGE_LIMITS[tier].items()},
            property_capacity=entitlements.property_capacity(tier)
        )
        for tier in SubscriptionTier
    ]


@router.get("/entitlements/{resource_type}", response_model=EntitlementResponse)
@handle_database_errors
async def get_entitlement(
    resource_type: ResourceType,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Whether the current user can use a resource type right now.
    Advisory only, nothing is reserved.
    """
    decision = await quota_service.evaluate(db, current_user.user_id, resource_type)
    return decision.to_response()


@router.get("/usage", response_model=UsageSummaryResponse)
@handle_database_errors
async def get_usage(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Usage of every resource type in the current billing period"""
    return await quota_service.usage_summary(db, current_user.user_id)


@router.get("/subscription", response_model=SubscriptionOverviewResponse)
@handle_database_errors
async def get_subscription(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Stored subscription of the current user and the tier it grants right now"""
    now = utcnow()
    subscription = await subscription_sync_service.get_or_create_subscription(db, current_user.user_id, now)
    start, end = current_period(subscription, now)
    return SubscriptionOverviewResponse(
        subscription=UserSubscriptionResponse.model_validate(subscription),
        effective_tier=effective_tier(subscription, now),
        current_period_start=start,
        current_period_end=end
    )


@router.post("/checkout", response_model=CheckoutResponse)
@handle_database_errors
async def create_checkout(
    request: CheckoutRequest,
    current_user: TokenData = Depends(get_current_user),
    gateway: StripeService = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db)
):
    """Start a payment for one billing cycle of a paid plan"""
    return await subscription_sync_service.initialize_checkout(
        db,
        user_id=current_user.user_id,
        email=current_user.email,
        tier=request.tier,
        gateway=gateway,
        success_url=request.success_url,
        cancel_url=request.cancel_url
    )


@router.post("/verify", response_model=VerifyResponse)
@handle_database_errors
async def verify_payment(
    request: VerifyRequest,
    current_user: TokenData = Depends(get_current_user),
    gateway: StripeService = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db)
):
    """
    Confirm a checkout after the redirect back from the payment page.
    Safe to call any number of times for the same reference.
    """
    return await subscription_sync_service.verify(
        db, request.reference, gateway, user_id=current_user.user_id
    )


@router.post("/webhook/stripe", response_model=WebhookAck)
@handle_database_errors
async def stripe_webhook(
    request: Request,
    gateway: StripeService = Depends(get_payment_gateway),
    db: AsyncSession = Depends(get_db)
):
    """
    Handle Stripe webhook events.
    Redelivered events are acknowledged without being applied again.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    return await subscription_sync_service.handle_webhook(db, payload, signature, gateway)


@router.post("/cancel", response_model=CancelSubscriptionResponse)
@handle_database_errors
async def cancel_subscription(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel renewal; the paid plan stays usable until the period ends"""
    return await subscription_sync_service.cancel(db, current_user.user_id)


@router.get("/transactions", response_model=GetTransactionsResponse)
@handle_database_errors
async def get_transactions(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Payment history of the current user"""
    transactions, total = await payment_transaction_crud.get_multi(
        db, skip=skip, limit=limit, filters={"supabase_user_id": current_user.user_id}
    )
    return GetTransactionsResponse(
        success=True,
        transactions=[PaymentTransactionResponse.model_validate(t) for t in transactions],
        total_count=total
    )
