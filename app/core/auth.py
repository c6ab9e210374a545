from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import asyncio
import logging

from app.services.supabase_service import supabase_service
from app.schemas.auth import TokenData
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ForbiddenError, UnauthenticatedError
from app.crud import user_role_crud
from app.models.user_role import AppRole

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def verify_token(token: str) -> Optional[TokenData]:
    """Resolve a bearer token to the user it was issued for, or None"""
    # First, verify the Supabase-issued JWT locally (fast, no network call)
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
        user_id = payload.get("sub")
        if user_id:
            return TokenData(user_id=user_id, email=payload.get("email") or "")
    except JWTError as decode_error:
        logger.debug(f"Local JWT verification failed: {decode_error}")

    # Fallback: ask Supabase (tokens signed with a rotated or asymmetric key)
    if not supabase_service.configured:
        return None
    try:
        user_result = await asyncio.wait_for(supabase_service.get_user(token), timeout=3.0)
    except asyncio.TimeoutError:
        logger.warning("⚠️ Supabase auth timeout")
        return None

    if user_result["success"] and user_result.get("user"):
        user = user_result["user"]
        return TokenData(user_id=user.id, email=user.email or "")
    return None


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenData]:
    """Current user if a valid bearer token was sent, else None"""
    if credentials is None:
        return None
    return await verify_token(credentials.credentials)


async def get_current_user(token_data: Optional[TokenData] = Depends(get_optional_user)) -> TokenData:
    """Get current authenticated user"""
    if token_data is None:
        raise UnauthenticatedError()
    return token_data


async def require_admin(
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> TokenData:
    """Current user, provided they hold the admin role"""
    if not await user_role_crud.has_role(db, current_user.user_id, AppRole.ADMIN):
        logger.warning(f"Admin action refused for user {current_user.user_id}")
        raise ForbiddenError("Admin role required")
    return current_user
