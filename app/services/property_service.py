from datetime import datetime
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core import entitlements
from app.core.exceptions import QuotaExceededError
from app.crud import property_crud, user_subscription
from app.models.property import Property
from app.models.usage_event import ResourceType
from app.schemas.property import PropertyCreate, PropertyResponse, GetPropertiesResponse
from app.services.subscription_sync_service import subscription_sync_service
from app.services.usage_ledger import effective_tier
from app.utils.utils import utcnow

logger = logging.getLogger(__name__)


class PropertyService:
    """Property slots, capped by the absolute capacity of the live tier"""

    async def create(
        self,
        db: AsyncSession,
        user_id: str,
        obj_in: PropertyCreate,
        now: Optional[datetime] = None
    ) -> Property:
        """Add a property if the user still has a free slot.

        The subscription row is touched first so that concurrent creates for
        one user run one after the other; the count and the insert then see
        each other's writes.
        """
        now = now or utcnow()
        subscription = await subscription_sync_service.get_or_create_subscription(db, user_id, now)
        await user_subscription.lock_for_user(db, user_id, now)
        await db.refresh(subscription)

        tier = effective_tier(subscription, now)
        capacity = entitlements.property_capacity(tier)
        used = await property_crud.count_active(db, user_id)
        if used >= capacity:
            await db.rollback()
            logger.info(f"Property capacity reached for user {user_id} ({used}/{capacity})")
            raise QuotaExceededError(tier.value, ResourceType.PROPERTY.value, capacity, used)

        return await property_crud.create(db, obj_in={"user_id": user_id, **obj_in.model_dump()})

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
        now: Optional[datetime] = None
    ) -> GetPropertiesResponse:
        now = now or utcnow()
        subscription = await subscription_sync_service.get_or_create_subscription(db, user_id, now)
        properties, total = await property_crud.get_multi(
            db, skip=skip, limit=limit, filters={"user_id": user_id}
        )
        return GetPropertiesResponse(
            success=True,
            properties=[PropertyResponse.model_validate(p) for p in properties],
            total_count=total,
            capacity=entitlements.property_capacity(effective_tier(subscription, now))
        )

    async def delete(self, db: AsyncSession, property_id: UUID, user_id: str) -> bool:
        """Soft delete, which frees the slot"""
        return await property_crud.soft_delete_by_user_id(db, id=property_id, user_id=user_id)


# Create singleton instance
property_service = PropertyService()
