from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union, Tuple
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_
from app.models.base import Base
from app.core.exceptions import NotFoundError

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)

class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _not_deleted(self):
        """Soft-delete filter, a no-op for append-only tables without the flag"""
        if hasattr(self.model, "is_deleted"):
            return self.model.is_deleted == False
        return True

    async def get_by_user_id(self, db: AsyncSession, id: Any, user_id: str, *, raise_if_not_found: bool = True) -> Optional[ModelType]:
        """Get a single record by ID and user_id (not soft deleted)"""
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.id == id,
                    self.model.user_id == user_id,
                    self._not_deleted()
                )
            )
        )
        obj = result.scalar_one_or_none()

        if raise_if_not_found and obj is None:
            raise NotFoundError(f"{self.model.__name__}")

        return obj

    async def get_multi(
        self,
        db: AsyncSession,
        *,
        skip: int = 0,
        limit: int = 100,
        filters: Optional[Dict[str, Any]] = None,
        order_desc: bool = True
    ) -> Tuple[List[ModelType], int]:
        """Get multiple records with pagination and equality / IN filtering"""
        query = select(self.model).where(self._not_deleted())

        if filters:
            filter_conditions = []
            for field, value in filters.items():
                if hasattr(self.model, field):
                    if isinstance(value, (list, tuple)):
                        filter_conditions.append(getattr(self.model, field).in_(value))
                    else:
                        filter_conditions.append(getattr(self.model, field) == value)

            if filter_conditions:
                query = query.where(and_(*filter_conditions))

        # Get total count for pagination
        count_query = select(func.count()).select_from(query.subquery())
        total_result = await db.execute(count_query)
        total = total_result.scalar()

        if order_desc:
            query = query.order_by(self.model.created_at.desc())
        else:
            query = query.order_by(self.model.created_at.asc())

        query = query.offset(skip).limit(limit)

        result = await db.execute(query)
        items = result.scalars().all()

        return items, total

    async def create(self, db: AsyncSession, *, obj_in: Union[CreateSchemaType, Dict[str, Any]], commit: bool = True) -> ModelType:
        """Create a new record. With commit=False the row is only flushed into the caller's transaction."""
        # Use model_dump() to preserve Python types (date, datetime, etc.)
        # instead of jsonable_encoder which converts them to strings
        if isinstance(obj_in, dict):
            obj_in_data = obj_in
        elif hasattr(obj_in, 'model_dump'):
            obj_in_data = obj_in.model_dump(exclude_unset=True)
        else:
            obj_in_data = jsonable_encoder(obj_in)

        db_obj = self.model(**obj_in_data)
        db.add(db_obj)
        if commit:
            await db.commit()
            await db.refresh(db_obj)
        else:
            await db.flush()
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, Dict[str, Any]],
        commit: bool = True
    ) -> ModelType:
        """Update a record"""
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        db.add(db_obj)
        if commit:
            await db.commit()
            await db.refresh(db_obj)
        else:
            await db.flush()
        return db_obj

    async def soft_delete_by_user_id(self, db: AsyncSession, *, id: Any, user_id: str, raise_if_not_found: bool = True) -> bool:
        """Soft delete a record by ID and user_id"""
        result = await db.execute(
            update(self.model).where(
                and_(
                    self.model.id == id,
                    self.model.user_id == user_id,
                    self.model.is_deleted == False
                )
            ).values(is_deleted=True)
        )

        await db.commit()
        rows_affected = result.rowcount

        if raise_if_not_found and rows_affected == 0:
            raise NotFoundError(f"{self.model.__name__}")

        return rows_affected > 0

    async def count(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None
    ) -> int:
        """Count records with optional equality filters (not soft deleted)"""
        query = select(func.count()).select_from(self.model).where(self._not_deleted())

        if filters:
            filter_conditions = []
            for field, value in filters.items():
                if hasattr(self.model, field):
                    if isinstance(value, (list, tuple)):
                        filter_conditions.append(getattr(self.model, field).in_(value))
                    else:
                        filter_conditions.append(getattr(self.model, field) == value)

            if filter_conditions:
                query = query.where(and_(*filter_conditions))

        result = await db.execute(query)
        return result.scalar() or 0
