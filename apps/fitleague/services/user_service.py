"""
User service layer for user profile database operations.
"""

from typing import Optional, Dict
from datetime import date
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from fitleague.database.models import User
import logging

logger = logging.getLogger(__name__)


async def create_user(
    session: AsyncSession,
    username: str,
    email: Optional[str] = None,
    date_of_birth: Optional[date] = None,
    platform_role: str = "user",
) -> int:
    """
    Create a user profile for an identity issued by the provider.

    Raises:
        ValueError: If the username is already taken
    """
    result = await session.execute(select(User.id).where(User.username == username))
    if result.scalar_one_or_none():
        raise ValueError(f"Username {username} is already registered")

    user = User(
        username=username,
        email=email,
        date_of_birth=date_of_birth,
        platform_role=platform_role,
    )
    session.add(user)
    await session.flush()
    user_id = user.id
    await session.commit()
    logger.info(f"Created user {user_id} ({username})")
    return user_id


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "date_of_birth": user.date_of_birth.isoformat() if user.date_of_birth else None,
        "platform_role": user.platform_role or "user",
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }
