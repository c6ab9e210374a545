from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update, and_
from pydantic import BaseModel

from app.crud.base import CRUDBase
from app.models.diagnostic import Diagnostic, DiagnosticStatus
from app.models.usage_event import ResourceType
from app.schemas.diagnostic import DiagnosisResult


class DiagnosticCreateRecord(BaseModel):
    user_id: str
    resource_type: ResourceType
    payload_ref: Optional[str] = None
    description: Optional[str] = None
    property_id: Optional[UUID] = None
    appliance_id: Optional[str] = None


class CRUDDiagnostic(CRUDBase[Diagnostic, DiagnosticCreateRecord, BaseModel]):
    async def mark_completed(self, db: AsyncSession, diagnostic_id: UUID, result: DiagnosisResult) -> int:
        """pending -> completed with the analysis result. Caller commits."""
        outcome = await db.execute(
            update(self.model)
            .where(
                and_(
                    self.model.id == diagnostic_id,
                    self.model.status == DiagnosticStatus.PENDING
                )
            )
            .values(status=DiagnosticStatus.COMPLETED, failure_reason=None, **result.model_dump())
        )
        return outcome.rowcount

    async def mark_failed(self, db: AsyncSession, diagnostic_id: UUID, reason: str) -> int:
        """pending -> failed, committed immediately"""
        outcome = await db.execute(
            update(self.model)
            .where(
                and_(
                    self.model.id == diagnostic_id,
                    self.model.status == DiagnosticStatus.PENDING
                )
            )
            .values(status=DiagnosticStatus.FAILED, failure_reason=reason)
        )
        await db.commit()
        return outcome.rowcount


diagnostic_crud = CRUDDiagnostic(Diagnostic)
