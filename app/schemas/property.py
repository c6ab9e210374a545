from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID


class PropertyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: Optional[str] = None


class PropertyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = None


class PropertyResponse(BaseModel):
    id: UUID
    name: str
    address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class GetPropertiesResponse(BaseModel):
    success: bool
    properties: List[PropertyResponse]
    total_count: int
    capacity: int
