from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from app.core.auth import get_current_user
from app.core.database import get_db
from app.core.exceptions import handle_database_errors
from app.crud import property_crud
from app.schemas.auth import TokenData
from app.schemas.property import PropertyCreate, PropertyUpdate, PropertyResponse, GetPropertiesResponse
from app.services.property_service import property_service

router = APIRouter()


@router.post("/", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
@handle_database_errors
async def create_property(
    request: PropertyCreate,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Add a property, if the plan has a free slot"""
    return await property_service.create(db, current_user.user_id, request)


@router.get("/", response_model=GetPropertiesResponse)
@handle_database_errors
async def get_properties(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Properties of the current user with the capacity of their plan"""
    return await property_service.list_for_user(db, current_user.user_id, skip=skip, limit=limit)


@router.get("/{property_id}", response_model=PropertyResponse)
@handle_database_errors
async def get_property(
    property_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a specific property"""
    return await property_crud.get_by_user_id(db, property_id, current_user.user_id)


@router.put("/{property_id}", response_model=PropertyResponse)
@handle_database_errors
async def update_property(
    property_id: UUID,
    request: PropertyUpdate,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Rename a property or change its address"""
    db_obj = await property_crud.get_by_user_id(db, property_id, current_user.user_id)
    return await property_crud.update(db, db_obj=db_obj, obj_in=request)


@router.delete("/{property_id}")
@handle_database_errors
async def delete_property(
    property_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete a property (soft delete), freeing its slot"""
    await property_service.delete(db, property_id, current_user.user_id)
    return {"message": "Property deleted successfully"}
