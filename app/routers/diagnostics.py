import asyncio
import logging

from fastapi import APIRouter, Depends, Request, Response, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from uuid import UUID

from app.core.auth import get_current_user, get_optional_user
from app.core.database import get_db
from app.core.exceptions import handle_database_errors
from app.schemas.auth import TokenData
from app.schemas.diagnostic import (
    DiagnosticCreate,
    DiagnosticResponse,
    GetDiagnosticsResponse,
    SubmitDiagnosticResponse
)
from app.services.analysis_service import AnalysisService, get_analyzer
from app.services.diagnostic_service import diagnostic_service

logger = logging.getLogger(__name__)

router = APIRouter()

DISCONNECT_POLL_SECONDS = 0.5
# nginx convention for a request the client closed before the response
CLIENT_CLOSED_REQUEST = 499


async def _cancel_on_disconnect(http_request: Request, task: asyncio.Task) -> bool:
    """Cancel task once the client goes away. Returns True if it did."""
    while not task.done():
        if await http_request.is_disconnected():
            task.cancel()
            return True
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)
    return False


@router.post("/", response_model=SubmitDiagnosticResponse, status_code=status.HTTP_201_CREATED)
@handle_database_errors
async def submit_diagnostic(
    request: DiagnosticCreate,
    http_request: Request,
    current_user: Optional[TokenData] = Depends(get_optional_user),
    analyzer: AnalysisService = Depends(get_analyzer),
    db: AsyncSession = Depends(get_db)
):
    """
    Run a diagnostic and charge it against the caller's plan.
    Usage is only recorded once the analysis has succeeded; a caller that
    disconnects while the analysis runs abandons it and is not charged.
    """
    submission = asyncio.create_task(diagnostic_service.submit(db, current_user, request, analyzer))
    watcher = asyncio.create_task(_cancel_on_disconnect(http_request, submission))
    try:
        return await submission
    except asyncio.CancelledError:
        if watcher.done() and not watcher.cancelled() and watcher.result():
            logger.info("Client disconnected, diagnostic submission abandoned")
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        raise
    finally:
        watcher.cancel()


@router.get("/", response_model=GetDiagnosticsResponse)
@handle_database_errors
async def get_diagnostics(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Diagnostic history of the current user"""
    diagnostics, total = await diagnostic_service.list_for_user(
        db, current_user.user_id, skip=skip, limit=limit
    )
    return GetDiagnosticsResponse(
        success=True,
        diagnostics=[DiagnosticResponse.model_validate(d) for d in diagnostics],
        total_count=total
    )


@router.get("/{diagnostic_id}", response_model=DiagnosticResponse)
@handle_database_errors
async def get_diagnostic(
    diagnostic_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a specific diagnostic"""
    return await diagnostic_service.get_for_user(db, diagnostic_id, current_user.user_id)
