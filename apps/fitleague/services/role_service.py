"""
Role resolution for league members.

A member may hold several roles in one league at the same time (for example
captain and player). Wherever a single role is needed, the highest one by
precedence host > governor > captain > player is used.
"""

import logging
from typing import Iterable, Optional, Set, Dict

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.database.models import (
    AssignedRole,
    League,
    LeagueMember,
    Role,
    RoleName,
)
from fitleague.utils.errors import Forbidden, NotFound, NotMember, ValidationFailed

logger = logging.getLogger(__name__)

ROLE_PRECEDENCE = [
    RoleName.HOST.value,
    RoleName.GOVERNOR.value,
    RoleName.CAPTAIN.value,
    RoleName.PLAYER.value,
]
ADMIN_ROLES = {RoleName.HOST.value, RoleName.GOVERNOR.value}


def highest_role(roles: Iterable[str]) -> Optional[str]:
    """Highest-precedence role in ``roles``, or None if it holds no known role."""
    held = set(roles)
    for role in ROLE_PRECEDENCE:
        if role in held:
            return role
    return None


def is_league_admin(roles: Iterable[str]) -> bool:
    """Hosts and governors may act on anything in their league."""
    return bool(ADMIN_ROLES & set(roles))


async def get_league(session: AsyncSession, league_id: int) -> League:
    """
    Load a league.

    Raises:
        NotFound: if the league does not exist
    """
    result = await session.execute(select(League).where(League.id == league_id))
    league = result.scalar_one_or_none()
    if league is None:
        raise NotFound("League not found")
    return league


async def get_member(
    session: AsyncSession, league_id: int, user_id: int
) -> Optional[LeagueMember]:
    result = await session.execute(
        select(LeagueMember).where(
            LeagueMember.league_id == league_id,
            LeagueMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def require_member(session: AsyncSession, league_id: int, user_id: int) -> LeagueMember:
    """
    Membership link for (user, league).

    Raises:
        NotMember: if the user has not joined the league
    """
    member = await get_member(session, league_id, user_id)
    if member is None:
        raise NotMember()
    return member


async def get_user_roles(session: AsyncSession, user_id: int, league_id: int) -> Set[str]:
    """
    All roles held by a user in a league.

    The league creator always counts as host.

    Raises:
        NotMember: if the user is not a member of the league
    """
    await require_member(session, league_id, user_id)

    result = await session.execute(
        select(Role.role_name)
        .join(AssignedRole, AssignedRole.role_id == Role.id)
        .where(AssignedRole.user_id == user_id, AssignedRole.league_id == league_id)
    )
    roles = set(result.scalars().all())

    created_by = (
        await session.execute(select(League.created_by).where(League.id == league_id))
    ).scalar_one_or_none()
    if created_by is not None and created_by == user_id:
        roles.add(RoleName.HOST.value)
    return roles


async def get_primary_role(session: AsyncSession, user_id: int, league_id: int) -> Optional[str]:
    return highest_role(await get_user_roles(session, user_id, league_id))


async def is_on_team(session: AsyncSession, user_id: int, league_id: int, team_id: Optional[int]) -> bool:
    """Whether the user is a member of ``team_id`` in the league."""
    if team_id is None:
        return False
    member = await get_member(session, league_id, user_id)
    return member is not None and member.team_id == team_id


async def require_league_admin(session: AsyncSession, user_id: int, league_id: int) -> Set[str]:
    """
    Roles of a host or governor.

    Raises:
        NotMember: not in the league
        Forbidden: neither host nor governor
    """
    roles = await get_user_roles(session, user_id, league_id)
    if not is_league_admin(roles):
        raise Forbidden("Only the host or a governor can perform this action")
    return roles


async def get_my_roles(session: AsyncSession, user_id: int, league_id: int) -> Dict:
    """Roles plus membership identifiers for the current user."""
    member = await require_member(session, league_id, user_id)
    roles = await get_user_roles(session, user_id, league_id)
    return {
        "roles": sorted(roles, key=ROLE_PRECEDENCE.index),
        "primary_role": highest_role(roles),
        "league_member_id": member.id,
        "team_id": member.team_id,
    }


async def _get_role_id(session: AsyncSession, role_name: str) -> int:
    result = await session.execute(select(Role.id).where(Role.role_name == role_name))
    role_id = result.scalar_one_or_none()
    if role_id is None:
        raise ValidationFailed(f"Unknown role: {role_name}")
    return role_id


async def _check_can_manage_role(
    session: AsyncSession, actor_user_id: int, league_id: int, role_name: str
) -> None:
    """Hosts manage every role; governors only manage captains."""
    actor_roles = await get_user_roles(session, actor_user_id, league_id)
    if RoleName.HOST.value in actor_roles:
        return
    if RoleName.GOVERNOR.value in actor_roles and role_name == RoleName.CAPTAIN.value:
        return
    raise Forbidden("You do not have permission to manage this role")


async def add_role(session: AsyncSession, user_id: int, league_id: int, role_name: str) -> bool:
    """
    Attach a role without permission checks (league creation, joining).

    Returns:
        True if a new assignment was created, False if it already existed
    """
    role_id = await _get_role_id(session, role_name)
    existing = await session.execute(
        select(AssignedRole.id).where(
            AssignedRole.user_id == user_id,
            AssignedRole.league_id == league_id,
            AssignedRole.role_id == role_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return False
    session.add(AssignedRole(user_id=user_id, league_id=league_id, role_id=role_id))
    await session.flush()
    return True


async def assign_role(
    session: AsyncSession,
    actor_user_id: int,
    league_id: int,
    target_user_id: int,
    role_name: str,
) -> Dict:
    """
    Assign a league role to a member.

    Raises:
        ValidationFailed: unknown role
        Forbidden: actor may not manage this role
        NotMember: actor or target not in the league
    """
    if role_name not in ROLE_PRECEDENCE:
        raise ValidationFailed(f"Unknown role: {role_name}")
    await _check_can_manage_role(session, actor_user_id, league_id, role_name)
    await require_member(session, league_id, target_user_id)

    created = await add_role(session, target_user_id, league_id, role_name)
    await session.commit()
    if created:
        logger.info(
            f"User {actor_user_id} assigned role {role_name} to user {target_user_id} in league {league_id}"
        )
    return await get_my_roles(session, target_user_id, league_id)


async def remove_role(
    session: AsyncSession,
    actor_user_id: int,
    league_id: int,
    target_user_id: int,
    role_name: str,
) -> Dict:
    """Remove a league role from a member. Same permission rules as ``assign_role``."""
    if role_name not in ROLE_PRECEDENCE:
        raise ValidationFailed(f"Unknown role: {role_name}")
    await _check_can_manage_role(session, actor_user_id, league_id, role_name)
    await require_member(session, league_id, target_user_id)

    role_id = await _get_role_id(session, role_name)
    await session.execute(
        delete(AssignedRole).where(
            AssignedRole.user_id == target_user_id,
            AssignedRole.league_id == league_id,
            AssignedRole.role_id == role_id,
        )
    )
    await session.commit()
    logger.info(
        f"User {actor_user_id} removed role {role_name} from user {target_user_id} in league {league_id}"
    )
    return await get_my_roles(session, target_user_id, league_id)
