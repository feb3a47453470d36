"""Rest day ledger, auto-assignment and donation route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.api.auth_dependencies import require_user
from fitleague.api.routes import limiter
from fitleague.database.db import get_db_session
from fitleague.models.schemas import (
    AutoRestDaysRequest,
    AutoRestDaysResponse,
    DonationAction,
    DonationCreate,
)
from fitleague.services import rest_day_service
from fitleague.utils.errors import LeagueRuleError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/leagues/{league_id}/rest-days")
async def get_rest_day_stats(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await rest_day_service.get_rest_day_stats(session, league_id, user["id"])
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error loading rest day stats for league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading rest day stats: {str(e)}")


@router.post("/api/leagues/{league_id}/auto-rest-days", response_model=AutoRestDaysResponse)
async def assign_auto_rest_days(
    league_id: int,
    payload: AutoRestDaysRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Fill missed past days with rest days.

    Body: {dates: ["YYYY-MM-DD", ...], tzOffsetMinutes?, timezone?}
    """
    try:
        return await rest_day_service.assign_auto_rest_days(
            session,
            league_id,
            user["id"],
            payload.dates,
            tz_offset_minutes=payload.tz_offset_minutes,
            tz_name=payload.tz_name,
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error assigning auto rest days in league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error assigning rest days: {str(e)}")


@router.get("/api/leagues/{league_id}/rest-day-donations")
async def list_donations(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await rest_day_service.list_donations(session, league_id, user["id"])
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing donations for league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing donations: {str(e)}")


@router.post("/api/leagues/{league_id}/rest-day-donations")
@limiter.limit("10/minute")
async def create_donation(
    request: Request,
    league_id: int,
    payload: DonationCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await rest_day_service.create_donation(
            session,
            league_id,
            user["id"],
            receiver_member_id=payload.receiver_member_id,
            days_transferred=payload.days_transferred,
            notes=payload.notes,
            proof_url=payload.proof_url,
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating donation in league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating donation: {str(e)}")


@router.patch("/api/leagues/{league_id}/rest-day-donations/{donation_id}")
async def act_on_donation(
    league_id: int,
    donation_id: int,
    payload: DonationAction,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Body: {action: "approve" | "reject"}"""
    try:
        return await rest_day_service.act_on_donation(
            session, league_id, donation_id, user["id"], payload.action
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error updating donation {donation_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating donation: {str(e)}")
