"""
Settings service for runtime configuration with database overrides.

Lookup order: ``settings`` table, then environment variable, then default.
Values read from the database are cached in Redis so every instance agrees
for the cache lifetime.
"""

import os
import logging
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from dotenv import load_dotenv

from fitleague.database.models import Setting
from fitleague.services import redis_service
from fitleague.utils.constants import (
    CAPTAIN_REVIEW_WINDOW_HOURS,
    AUTO_APPROVE_AFTER_HOURS,
    REUPLOAD_GRACE_DAYS,
)

load_dotenv()

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60
REDIS_KEY_PREFIX = "settings:"


async def get_setting(session: AsyncSession, key: str) -> Optional[str]:
    """Raw value stored in the settings table, or None."""
    result = await session.execute(select(Setting.value).where(Setting.key == key))
    return result.scalar_one_or_none()


async def set_setting(session: AsyncSession, key: str, value: str) -> None:
    """Insert or update a setting and drop its cached value."""
    result = await session.execute(select(Setting).where(Setting.key == key))
    setting = result.scalar_one_or_none()
    if setting:
        setting.value = value
    else:
        session.add(Setting(key=key, value=value))
    await session.flush()
    await redis_service.redis_delete(f"{REDIS_KEY_PREFIX}{key}")


async def get_setting_with_fallback(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[str] = None,
) -> Optional[str]:
    """
    Get a setting value from cache or database first, then env var, then default.

    Args:
        session: Database session (optional)
        key: Setting key in database
        env_var: Environment variable name to fall back to
        default: Default value if neither database nor env var is set

    Returns:
        Setting value as string, or None
    """
    redis_key = f"{REDIS_KEY_PREFIX}{key}"
    cached = await redis_service.redis_get(redis_key)
    if cached is not None:
        return cached

    if session is not None:
        value = await get_setting(session, key)
        if value is not None:
            await redis_service.redis_set(redis_key, value, CACHE_TTL_SECONDS)
            return value

    if env_var:
        value = os.getenv(env_var)
        if value is not None:
            return value

    return default


async def get_float_setting(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[float] = None,
) -> Optional[float]:
    """Float setting; unparseable values log a warning and use the default."""
    value = await get_setting_with_fallback(session, key, env_var, None)
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid float value for setting {key}: {value}")
        return default


async def get_int_setting(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[int] = None,
) -> Optional[int]:
    """Integer setting; unparseable values log a warning and use the default."""
    value = await get_setting_with_fallback(session, key, env_var, None)
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid integer value for setting {key}: {value}")
        return default


async def get_captain_window_hours(session: Optional[AsyncSession]) -> float:
    return await get_float_setting(
        session,
        "captain_review_window_hours",
        "CAPTAIN_REVIEW_WINDOW_HOURS",
        float(CAPTAIN_REVIEW_WINDOW_HOURS),
    )


async def get_auto_approve_hours(session: Optional[AsyncSession]) -> float:
    return await get_float_setting(
        session,
        "auto_approve_after_hours",
        "AUTO_APPROVE_AFTER_HOURS",
        float(AUTO_APPROVE_AFTER_HOURS),
    )


async def get_reupload_grace_days(session: Optional[AsyncSession]) -> int:
    days = await get_int_setting(
        session,
        "reupload_grace_days",
        "REUPLOAD_GRACE_DAYS",
        REUPLOAD_GRACE_DAYS,
    )
    return max(0, days)
