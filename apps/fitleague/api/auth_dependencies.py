"""
Authentication dependencies for FastAPI routes.
"""

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import os
from sqlalchemy.ext.asyncio import AsyncSession
from fitleague.services import auth_service, user_service
from fitleague.database.db import get_db_session
from fitleague.utils.errors import Forbidden, Unauthorized

security = HTTPBearer(auto_error=False)


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from the identity token.

    Returns:
        User dictionary

    Raises:
        Unauthorized: If the token is missing or invalid, or the user is unknown
    """
    if credentials is None:
        raise Unauthorized("Authentication required")

    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise Unauthorized("Invalid authentication token")

    user = await user_service.get_user_by_id(session, payload["user_id"])
    if user is None:
        raise Unauthorized("User not found")

    return user


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any authenticated user."""
    return user


async def require_platform_admin(user: dict = Depends(get_current_user)) -> dict:
    """Require a platform administrator (pricing, settings, user provisioning)."""
    if user.get("platform_role") != "admin":
        raise Forbidden("Platform admin access required")
    return user


async def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Scheduled jobs authenticate with ``Authorization: Bearer $CRON_SECRET``."""
    secret = os.getenv("CRON_SECRET")
    if not secret or authorization != f"Bearer {secret}":
        raise Unauthorized("Invalid cron secret")
