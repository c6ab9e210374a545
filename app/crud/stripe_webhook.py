from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from typing import Optional
from datetime import datetime

from app.crud.base import CRUDBase
from app.models.stripe_webhook import StripeWebhook
from pydantic import BaseModel


class StripeWebhookCreate(BaseModel):
    event_id: str
    event_type: str
    reference: Optional[str] = None
    outcome: Optional[str] = None
    webhook_timestamp: Optional[datetime] = None


class CRUDStripeWebhook(CRUDBase[StripeWebhook, StripeWebhookCreate, BaseModel]):
    async def get_by_event_id(self, db: AsyncSession, event_id: str) -> Optional[StripeWebhook]:
        result = await db.execute(
            select(self.model).where(and_(self.model.event_id == event_id, self.model.is_deleted == False))
        )
        return result.scalar_one_or_none()


stripe_webhook_crud = CRUDStripeWebhook(StripeWebhook)
