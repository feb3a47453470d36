"""Leaderboard route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.api.auth_dependencies import require_user
from fitleague.database.db import get_db_session
from fitleague.services import leaderboard_service
from fitleague.utils.errors import LeagueRuleError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/leagues/{league_id}/leaderboard")
async def get_league_leaderboard(
    league_id: int,
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Team and individual standings.

    Query: startDate?, endDate? (YYYY-MM-DD, default league start and today)
    """
    try:
        return await leaderboard_service.get_league_leaderboard(
            session, league_id, user["id"], start_date=start_date, end_date=end_date
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error loading leaderboard for league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading leaderboard: {str(e)}")
