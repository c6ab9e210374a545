from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.crud import admin_log_crud
from app.schemas.admin import AdminLogCreate
from app.utils.utils import utcnow

logger = logging.getLogger(__name__)

KILL_SWITCH_ACTION = "emergency_kill_switch"


@dataclass(frozen=True)
class KillSwitchState:
    enabled: bool
    changed_at: Optional[datetime] = None
    changed_by: Optional[str] = None


class KillSwitch:
    """Process-wide emergency stop for diagnostic submissions.

    Note: This is per-process memory only and starts disabled. If you run
    multiple workers/processes, each one has to be toggled.
    """

    def __init__(self) -> None:
        self._state = KillSwitchState(enabled=False)

    def is_active(self) -> bool:
        return self._state.enabled

    def state(self) -> KillSwitchState:
        return self._state

    async def set(self, db: AsyncSession, actor_id: str, enabled: bool) -> KillSwitchState:
        """Toggle the switch and write the audit record"""
        now = utcnow()
        await admin_log_crud.create(
            db,
            obj_in=AdminLogCreate(
                admin_id=actor_id,
                action=KILL_SWITCH_ACTION,
                details={"enabled": enabled},
                created_at=now
            )
        )
        self._state = KillSwitchState(enabled=enabled, changed_at=now, changed_by=actor_id)
        logger.warning(f"🚨 Kill switch {'ENABLED' if enabled else 'disabled'} by admin {actor_id}")
        return self._state

    def reset(self) -> None:
        self._state = KillSwitchState(enabled=False)


kill_switch = KillSwitch()
