"""
Diagnostic submission.

A submission is checked against the caller's plan, analysed by the external
model, and only then charged. Nothing is reserved while the analysis runs, so
a failed or abandoned analysis never costs the user anything; the price of
that is that two parallel submissions can both pass the first check, and the
conditional usage write decides which of them gets the last unit.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core import entitlements
from app.core.config import settings
from app.core.exceptions import (
    AnalysisError,
    AnalysisFailureError,
    CommitRaceError,
    FeatureLockedError,
    QuotaExceededError,
    ServiceDisabledError,
    UnauthenticatedError
)
from app.core.kill_switch import kill_switch
from app.crud import diagnostic_crud, property_crud, user_subscription
from app.crud.diagnostic import DiagnosticCreateRecord
from app.models.diagnostic import Diagnostic
from app.models.usage_event import ResourceType
from app.schemas.auth import TokenData
from app.schemas.diagnostic import (
    DiagnosisResult,
    DiagnosticCreate,
    DiagnosticResponse,
    SubmitDiagnosticResponse,
    UsageSnapshot
)
from app.services.quota_service import quota_service
from app.services.subscription_sync_service import subscription_sync_service
from app.services.usage_ledger import usage_ledger, current_period, effective_tier
from app.utils.utils import utcnow

logger = logging.getLogger(__name__)

# Diagnostic.failure_reason values
REASON_ANALYSIS_FAILED = "analysis_failed"
REASON_LIMIT_REACHED = "limit_reached"
REASON_LOCKED = "locked"
REASON_ABANDONED = "abandoned"
REASON_COMMIT_FAILED = "commit_failed"


class DiagnosticService:
    """Runs a diagnostic submission from request to committed usage"""

    async def submit(
        self,
        db: AsyncSession,
        user: Optional[TokenData],
        request: DiagnosticCreate,
        analyzer: Any,
        now: Optional[datetime] = None
    ) -> SubmitDiagnosticResponse:
        if kill_switch.is_active():
            logger.info("Submission refused, kill switch is active")
            raise ServiceDisabledError()
        if user is None:
            raise UnauthenticatedError()

        user_id = user.user_id
        resource_type = request.resource_type

        decision = await quota_service.evaluate(db, user_id, resource_type, now or utcnow())
        if decision.locked:
            logger.info(f"{resource_type.value} locked on {decision.tier.value} for user {user_id}")
            raise FeatureLockedError(decision.tier.value, resource_type.value)
        if decision.at_limit:
            logger.info(f"{resource_type.value} limit reached for user {user_id} ({decision.used}/{decision.limit})")
            raise QuotaExceededError(
                decision.tier.value, resource_type.value, decision.limit, decision.used, decision.period_end
            )

        if request.property_id:
            await property_crud.get_by_user_id(db, request.property_id, user_id)

        diagnostic = await diagnostic_crud.create(
            db,
            obj_in=DiagnosticCreateRecord(
                user_id=user_id,
                resource_type=resource_type,
                payload_ref=request.payload_ref,
                description=request.description,
                property_id=request.property_id,
                appliance_id=request.appliance_id
            )
        )
        diagnostic_id = diagnostic.id

        try:
            result = await asyncio.wait_for(
                analyzer.analyze(resource_type, request.payload_ref, request.description),
                timeout=settings.analysis_timeout_seconds
            )
        except asyncio.CancelledError:
            logger.info(f"Diagnostic {diagnostic_id} abandoned by the caller")
            await diagnostic_crud.mark_failed(db, diagnostic_id, REASON_ABANDONED)
            raise
        except (AnalysisError, asyncio.TimeoutError) as e:
            logger.warning(f"⚠️ Analysis of diagnostic {diagnostic_id} failed: {e!r}")
            await diagnostic_crud.mark_failed(db, diagnostic_id, REASON_ANALYSIS_FAILED)
            raise AnalysisFailureError(str(diagnostic_id))

        try:
            return await self._commit(db, user_id, resource_type, diagnostic, result, now)
        except asyncio.CancelledError:
            # Only a still pending diagnostic is marked; a finished commit stands
            await db.rollback()
            await diagnostic_crud.mark_failed(db, diagnostic_id, REASON_ABANDONED)
            logger.info(f"Diagnostic {diagnostic_id} abandoned by the caller during commit")
            raise

    async def _commit(
        self,
        db: AsyncSession,
        user_id: str,
        resource_type: ResourceType,
        diagnostic: Diagnostic,
        result: DiagnosisResult,
        now: Optional[datetime]
    ) -> SubmitDiagnosticResponse:
        """Charge the usage and complete the diagnostic in one transaction.

        Tier, period and limit are read again here, under the per-user lock
        that payment application also takes: the subscription may have
        changed while the analysis was running.
        """
        now = now or utcnow()
        diagnostic_id = diagnostic.id
        try:
            await user_subscription.lock_for_user(db, user_id, now)
            subscription = await subscription_sync_service.get_or_create_subscription(db, user_id, now)
        except Exception as e:
            raise await self._commit_failed(db, diagnostic_id, e)
        tier = effective_tier(subscription, now)
        limit = entitlements.limit(tier, resource_type)
        period = current_period(subscription, now)

        if limit == 0:
            await diagnostic_crud.mark_failed(db, diagnostic_id, REASON_LOCKED)
            raise FeatureLockedError(tier.value, resource_type.value)

        try:
            _, used = await usage_ledger.commit(
                db,
                user_id=user_id,
                resource_type=resource_type,
                diagnostic_id=diagnostic_id,
                tier=tier,
                limit=limit,
                period=period,
                now=now
            )
            completed = await diagnostic_crud.mark_completed(db, diagnostic_id, result)
            if completed:
                await db.commit()
        except CommitRaceError:
            await diagnostic_crud.mark_failed(db, diagnostic_id, REASON_LIMIT_REACHED)
            used = await usage_ledger.count_in_period(db, user_id, resource_type, period)
            logger.warning(f"⚠️ Diagnostic {diagnostic_id} lost the race for the last {resource_type.value} unit")
            raise QuotaExceededError(tier.value, resource_type.value, limit, used, period[1])
        except Exception as e:
            raise await self._commit_failed(db, diagnostic_id, e)

        if not completed:
            # Someone failed the diagnostic underneath us; do not charge for it
            await db.rollback()
            logger.warning(f"⚠️ Diagnostic {diagnostic_id} was no longer pending at commit")
            raise AnalysisFailureError(str(diagnostic_id))

        await db.refresh(diagnostic)
        logger.info(f"✅ Diagnostic {diagnostic_id} completed for user {user_id} ({resource_type.value} {used}/{limit})")

        return SubmitDiagnosticResponse(
            diagnostic_id=diagnostic_id,
            diagnostic=DiagnosticResponse.model_validate(diagnostic),
            usage=UsageSnapshot(used=used, limit=limit, remaining=max(0, limit - used), tier=tier)
        )

    async def _commit_failed(self, db: AsyncSession, diagnostic_id: UUID, error: Exception) -> AnalysisFailureError:
        """Roll back a broken commit and fail the diagnostic; returns the error to raise"""
        await db.rollback()
        await diagnostic_crud.mark_failed(db, diagnostic_id, REASON_COMMIT_FAILED)
        logger.error(f"❌ Usage commit for diagnostic {diagnostic_id} failed: {error!r}")
        return AnalysisFailureError(str(diagnostic_id))

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Diagnostic], int]:
        """Diagnostic history of a user, newest first"""
        return await diagnostic_crud.get_multi(db, skip=skip, limit=limit, filters={"user_id": user_id})

    async def get_for_user(self, db: AsyncSession, diagnostic_id: UUID, user_id: str) -> Diagnostic:
        return await diagnostic_crud.get_by_user_id(db, diagnostic_id, user_id)


# Create singleton instance
diagnostic_service = DiagnosticService()
