from sqlalchemy.ext.asyncio import AsyncSession

from app.crud.base import CRUDBase
from app.models.property import Property
from app.schemas.property import PropertyCreate, PropertyUpdate


class CRUDProperty(CRUDBase[Property, PropertyCreate, PropertyUpdate]):
    async def count_active(self, db: AsyncSession, user_id: str) -> int:
        """Properties the user currently holds (soft deleted ones free their slot)"""
        return await self.count(db, filters={"user_id": user_id})


property_crud = CRUDProperty(Property)
