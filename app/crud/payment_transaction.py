from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, update
from pydantic import BaseModel

from app.crud.base import CRUDBase
from app.models.payment_transaction import PaymentTransaction, TransactionStatus
from app.schemas.billing import PaymentTransactionCreate


class CRUDPaymentTransaction(CRUDBase[PaymentTransaction, PaymentTransactionCreate, BaseModel]):
    async def get_by_reference(self, db: AsyncSession, reference: str) -> Optional[PaymentTransaction]:
        result = await db.execute(
            select(self.model).where(
                and_(self.model.reference == reference, self.model.is_deleted == False)
            )
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        db: AsyncSession,
        reference: str,
        from_status: TransactionStatus,
        to_status: TransactionStatus,
        verified_at: datetime
    ) -> bool:
        """Conditional status change; False if the row was not in from_status. Caller commits."""
        result = await db.execute(
            update(self.model)
            .where(
                and_(
                    self.model.reference == reference,
                    self.model.status == from_status
                )
            )
            .values(status=to_status, verified_at=verified_at)
        )
        return result.rowcount == 1

    async def get_status(self, db: AsyncSession, reference: str) -> Optional[TransactionStatus]:
        """Committed status of a reference, bypassing any copy held by the session"""
        result = await db.execute(select(self.model.status).where(self.model.reference == reference))
        return result.scalar_one_or_none()


payment_transaction_crud = CRUDPaymentTransaction(PaymentTransaction)
