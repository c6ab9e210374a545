from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID


class KillSwitchRequest(BaseModel):
    enabled: bool


class KillSwitchResponse(BaseModel):
    enabled: bool
    changed_at: Optional[datetime] = None
    changed_by: Optional[str] = None


class AdminLogCreate(BaseModel):
    admin_id: str
    action: str
    details: Optional[Dict[str, Any]] = None
    created_at: datetime


class AdminLogResponse(BaseModel):
    id: UUID
    admin_id: str
    action: str
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class GetAdminLogsResponse(BaseModel):
    success: bool
    logs: List[AdminLogResponse]
    total_count: int


class ExpireSubscriptionsResponse(BaseModel):
    downgraded: int
    marked_past_due: int
