"""
League, membership and team management.
"""

import logging
import secrets
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.database.models import (
    League,
    LeagueMember,
    LeagueStatus,
    RoleName,
    Team,
    User,
)
from fitleague.services import rest_day_service, role_service
from fitleague.utils.datetime_utils import format_ymd, parse_ymd
from fitleague.utils.errors import (
    CapacityExceeded,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


def _league_to_dict(league: League) -> Dict:
    return {
        "id": league.id,
        "name": league.name,
        "description": league.description,
        "status": league.status,
        "start_date": format_ymd(league.start_date),
        "end_date": format_ymd(league.end_date),
        "rest_days": league.rest_days,
        "total_rest_days": league.total_rest_days,
        "total_rest_allowance": rest_day_service.league_allowance(league),
        "num_teams": league.num_teams,
        "team_size": league.team_size,
        "max_members": league.max_members,
        "normalize_points_by_team_size": bool(league.normalize_points_by_team_size),
        "invite_code": league.invite_code,
        "created_by": league.created_by,
    }


def _member_to_dict(member: LeagueMember) -> Dict:
    return {
        "id": member.id,
        "league_id": member.league_id,
        "user_id": member.user_id,
        "team_id": member.team_id,
    }


def generate_invite_code() -> str:
    return secrets.token_hex(4).upper()


async def create_league(session: AsyncSession, creator_user_id: int, payload: Dict) -> Dict:
    """
    Create a league. The creator joins it as its host.

    Raises:
        ValidationFailed: missing name, bad dates or negative allowances
    """
    name = (payload.get("name") or "").strip()
    start_date = parse_ymd(payload.get("start_date"))
    end_date = parse_ymd(payload.get("end_date"))
    if not name:
        raise ValidationFailed("name is required")
    if start_date is None or end_date is None:
        raise ValidationFailed("start_date and end_date must be YYYY-MM-DD")
    if end_date < start_date:
        raise ValidationFailed("end_date must be on or after start_date")

    rest_days = payload.get("rest_days", 1)
    total_rest_days = payload.get("total_rest_days")
    if rest_days is None or int(rest_days) < 0:
        raise ValidationFailed("rest_days must be >= 0")
    if total_rest_days is not None and int(total_rest_days) < 0:
        raise ValidationFailed("total_rest_days must be >= 0")

    existing = await session.execute(select(League.id).where(League.name == name))
    if existing.scalar_one_or_none() is not None:
        raise ValidationFailed(f"A league named '{name}' already exists")

    league = League(
        name=name,
        description=payload.get("description"),
        status=LeagueStatus.DRAFT.value,
        start_date=start_date,
        end_date=end_date,
        rest_days=int(rest_days),
        total_rest_days=int(total_rest_days) if total_rest_days is not None else None,
        num_teams=payload.get("num_teams"),
        team_size=payload.get("team_size"),
        max_members=payload.get("max_members"),
        normalize_points_by_team_size=bool(payload.get("normalize_points_by_team_size", False)),
        invite_code=generate_invite_code(),
        created_by=creator_user_id,
    )
    session.add(league)
    await session.flush()  # Get the league ID

    session.add(LeagueMember(league_id=league.id, user_id=creator_user_id))
    await session.flush()
    await role_service.add_role(session, creator_user_id, league.id, RoleName.HOST.value)
    await session.commit()
    await session.refresh(league)
    logger.info(f"User {creator_user_id} created league {league.id} ({league.name})")
    return _league_to_dict(league)


async def get_league_details(session: AsyncSession, league_id: int) -> Dict:
    league = await role_service.get_league(session, league_id)
    return _league_to_dict(league)


async def launch_league(session: AsyncSession, league_id: int, user_id: int) -> Dict:
    """Open a draft league for effort entries. Host or governor only."""
    league = await role_service.get_league(session, league_id)
    await role_service.require_league_admin(session, user_id, league_id)
    if league.status != LeagueStatus.DRAFT.value:
        raise InvalidTransition(f"League is already {league.status}")
    league.status = LeagueStatus.LAUNCHED.value
    await session.commit()
    await session.refresh(league)
    logger.info(f"League {league_id} launched by user {user_id}")
    return _league_to_dict(league)


async def join_league(
    session: AsyncSession,
    user_id: int,
    league_id: Optional[int] = None,
    invite_code: Optional[str] = None,
) -> Dict:
    """
    Join a league by id or invite code and take the player role.

    Raises:
        ValidationFailed: neither id nor code given, or already a member
        NotFound: no such league
        CapacityExceeded: the league is full
    """
    if league_id is None and not invite_code:
        raise ValidationFailed("league_id or invite_code is required")
    if league_id is not None:
        league = await role_service.get_league(session, league_id)
    else:
        result = await session.execute(
            select(League).where(League.invite_code == invite_code.strip().upper())
        )
        league = result.scalar_one_or_none()
        if league is None:
            raise NotFound("Invalid invite code")

    if league.status == LeagueStatus.COMPLETED.value:
        raise InvalidTransition("League has already completed")
    if await role_service.get_member(session, league.id, user_id) is not None:
        raise ValidationFailed("You are already a member of this league")

    if league.max_members is not None:
        count = (
            await session.execute(
                select(func.count(LeagueMember.id)).where(LeagueMember.league_id == league.id)
            )
        ).scalar() or 0
        if count >= league.max_members:
            logger.warning(f"User {user_id} refused: league {league.id} is full ({count})")
            raise CapacityExceeded("League is full", {"max_members": league.max_members})

    member = LeagueMember(league_id=league.id, user_id=user_id)
    session.add(member)
    await session.flush()
    await role_service.add_role(session, user_id, league.id, RoleName.PLAYER.value)
    await session.commit()
    await session.refresh(member)
    logger.info(f"User {user_id} joined league {league.id}")
    return _member_to_dict(member)


async def create_team(session: AsyncSession, league_id: int, user_id: int, name: str) -> Dict:
    await role_service.require_league_admin(session, user_id, league_id)
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Team name is required")
    existing = await session.execute(
        select(Team.id).where(Team.league_id == league_id, Team.name == name)
    )
    if existing.scalar_one_or_none() is not None:
        raise ValidationFailed(f"Team '{name}' already exists in this league")
    team = Team(league_id=league_id, name=name)
    session.add(team)
    await session.commit()
    await session.refresh(team)
    logger.info(f"Team {team.id} ({name}) created in league {league_id}")
    return {"id": team.id, "league_id": team.league_id, "name": team.name}


async def assign_member_team(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    league_member_id: int,
    team_id: Optional[int],
) -> Dict:
    """Move a member to a team of the same league, or off any team with ``team_id=None``."""
    await role_service.require_league_admin(session, user_id, league_id)
    result = await session.execute(
        select(LeagueMember).where(
            LeagueMember.id == league_member_id, LeagueMember.league_id == league_id
        )
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise NotFound("Member not found in this league")
    if team_id is not None:
        team = (
            await session.execute(select(Team).where(Team.id == team_id, Team.league_id == league_id))
        ).scalar_one_or_none()
        if team is None:
            raise NotFound("Team not found in this league")
    member.team_id = team_id
    await session.commit()
    await session.refresh(member)
    logger.info(f"Member {member.id} moved to team {team_id} in league {league_id}")
    return _member_to_dict(member)


async def list_members(session: AsyncSession, league_id: int, user_id: int) -> List[Dict]:
    await role_service.require_member(session, league_id, user_id)
    result = await session.execute(
        select(LeagueMember, User.username, Team.name)
        .join(User, User.id == LeagueMember.user_id)
        .outerjoin(Team, Team.id == LeagueMember.team_id)
        .where(LeagueMember.league_id == league_id)
        .order_by(User.username)
    )
    return [
        {**_member_to_dict(member), "username": username, "team_name": team_name}
        for member, username, team_name in result.all()
    ]
