"""Effort entry and review route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.api.auth_dependencies import require_user
from fitleague.api.routes import limiter
from fitleague.database.db import get_db_session
from fitleague.models.schemas import (
    EntryCreate,
    RunRatePreviewRequest,
    RunRatePreviewResponse,
    SubmissionValidateRequest,
)
from fitleague.services import run_rate_service, submission_service
from fitleague.utils.datetime_utils import parse_ymd
from fitleague.utils.errors import LeagueRuleError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/entries")
@limiter.limit("30/minute")
async def create_entry(
    request: Request,
    payload: EntryCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Log a workout or rest day.

    Body: {league_id, date, type, workout_type?, duration?, distance?, steps?,
           holes?, proof_url?, notes?, tzOffsetMinutes?}
    """
    try:
        return await submission_service.create_entry(
            session,
            user_id=user["id"],
            league_id=payload.league_id,
            payload=payload.model_dump(exclude={"league_id", "tz_offset_minutes"}),
            tz_offset_minutes=payload.tz_offset_minutes,
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating entry: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating entry: {str(e)}")


@router.post("/api/entries/preview-rr", response_model=RunRatePreviewResponse)
async def preview_run_rate(
    payload: RunRatePreviewRequest,
    user: dict = Depends(require_user),
):
    """RR the entry would earn, using the current user's age thresholds."""
    age = run_rate_service.calculate_age(parse_ymd(user.get("date_of_birth")))
    return run_rate_service.preview_run_rate(
        payload.type,
        payload.workout_type,
        payload.duration,
        payload.distance,
        payload.steps,
        payload.holes,
        age,
    )


@router.post("/api/submissions/{entry_id}/validate")
async def validate_submission(
    entry_id: int,
    payload: SubmissionValidateRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Approve, reject or re-open an effort entry.

    Body: {status, rejection_reason?, awardedPoints?}
    """
    try:
        entry = await submission_service.validate_submission(
            session,
            entry_id=entry_id,
            user_id=user["id"],
            status=payload.status,
            rejection_reason=payload.rejection_reason,
            awarded_points=payload.awarded_points,
        )
        return {"success": True, "data": entry}
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error validating submission {entry_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error validating submission: {str(e)}")


@router.get("/api/leagues/{league_id}/submissions")
async def list_league_submissions(
    league_id: int,
    status: Optional[str] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Entries the current user may review in this league."""
    try:
        return await submission_service.list_league_submissions(
            session, league_id, user["id"], status=status
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing submissions for league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing submissions: {str(e)}")


@router.get("/api/entries/rejected-summary")
async def get_rejected_summary(
    force: bool = False,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await submission_service.get_rejected_summary(session, user["id"], force_refresh=force)
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error loading rejected summary: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading rejected summary: {str(e)}")
