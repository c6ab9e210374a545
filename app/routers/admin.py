from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_admin
from app.core.database import get_db
from app.core.exceptions import handle_database_errors
from app.core.kill_switch import kill_switch
from app.crud import admin_log_crud
from app.schemas.admin import (
    AdminLogResponse,
    ExpireSubscriptionsResponse,
    GetAdminLogsResponse,
    KillSwitchRequest,
    KillSwitchResponse
)
from app.schemas.auth import TokenData
from app.services.subscription_sync_service import subscription_sync_service

router = APIRouter()


@router.get("/kill-switch", response_model=KillSwitchResponse)
async def get_kill_switch(admin: TokenData = Depends(require_admin)):
    """Current state of the diagnostics kill switch"""
    state = kill_switch.state()
    return KillSwitchResponse(enabled=state.enabled, changed_at=state.changed_at, changed_by=state.changed_by)


@router.post("/kill-switch", response_model=KillSwitchResponse)
@handle_database_errors
async def set_kill_switch(
    request: KillSwitchRequest,
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Turn diagnostic submissions off (enabled=true) or back on"""
    state = await kill_switch.set(db, admin.user_id, request.enabled)
    return KillSwitchResponse(enabled=state.enabled, changed_at=state.changed_at, changed_by=state.changed_by)


@router.get("/logs", response_model=GetAdminLogsResponse)
@handle_database_errors
async def get_admin_logs(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Admin audit trail, newest first"""
    logs, total = await admin_log_crud.get_recent(db, skip=skip, limit=limit)
    return GetAdminLogsResponse(
        success=True,
        logs=[AdminLogResponse.model_validate(log) for log in logs],
        total_count=total
    )


@router.post("/subscriptions/expire", response_model=ExpireSubscriptionsResponse)
@handle_database_errors
async def expire_subscriptions(
    admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Run the lapsed-subscription job now (normally triggered by the scheduler)"""
    return await subscription_sync_service.expire_lapsed(db)
