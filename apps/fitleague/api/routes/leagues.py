"""League, membership, team and role route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.api.auth_dependencies import require_user
from fitleague.database.db import get_db_session
from fitleague.models.schemas import (
    LeagueCreate,
    LeagueJoin,
    LeagueResponse,
    MemberTeamUpdate,
    RoleChange,
    TeamCreate,
)
from fitleague.services import league_service, role_service
from fitleague.utils.errors import LeagueRuleError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/leagues", response_model=LeagueResponse)
async def create_league(
    payload: LeagueCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a league. The creator becomes its host."""
    try:
        return await league_service.create_league(session, user["id"], payload.model_dump())
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating league: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating league: {str(e)}")


@router.get("/api/leagues/{league_id}", response_model=LeagueResponse)
async def get_league(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await league_service.get_league_details(session, league_id)
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error loading league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading league: {str(e)}")


@router.post("/api/leagues/{league_id}/launch", response_model=LeagueResponse)
async def launch_league(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await league_service.launch_league(session, league_id, user["id"])
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error launching league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error launching league: {str(e)}")


@router.post("/api/leagues/{league_id}/join")
async def join_league(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await league_service.join_league(session, user["id"], league_id=league_id)
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error joining league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error joining league: {str(e)}")


@router.post("/api/leagues/join")
async def join_league_by_code(
    payload: LeagueJoin,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Body: {invite_code}"""
    try:
        return await league_service.join_league(session, user["id"], invite_code=payload.invite_code)
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error joining league by code: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error joining league: {str(e)}")


@router.get("/api/leagues/{league_id}/members")
async def list_members(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await league_service.list_members(session, league_id, user["id"])
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing members of league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing members: {str(e)}")


@router.post("/api/leagues/{league_id}/teams")
async def create_team(
    league_id: int,
    payload: TeamCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await league_service.create_team(session, league_id, user["id"], payload.name)
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating team in league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating team: {str(e)}")


@router.put("/api/leagues/{league_id}/members/{member_id}/team")
async def assign_member_team(
    league_id: int,
    member_id: int,
    payload: MemberTeamUpdate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await league_service.assign_member_team(
            session, league_id, user["id"], member_id, payload.team_id
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error assigning team for member {member_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error assigning team: {str(e)}")


@router.get("/api/leagues/{league_id}/my-roles")
async def get_my_roles(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await role_service.get_my_roles(session, user["id"], league_id)
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error loading roles in league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading roles: {str(e)}")


@router.post("/api/leagues/{league_id}/roles")
async def assign_role(
    league_id: int,
    payload: RoleChange,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await role_service.assign_role(
            session, user["id"], league_id, payload.user_id, payload.role_name
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error assigning role in league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error assigning role: {str(e)}")


@router.delete("/api/leagues/{league_id}/roles")
async def remove_role(
    league_id: int,
    payload: RoleChange,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await role_service.remove_role(
            session, user["id"], league_id, payload.user_id, payload.role_name
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error removing role in league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error removing role: {str(e)}")
