"""League challenge route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.api.auth_dependencies import require_user
from fitleague.database.db import get_db_session
from fitleague.models.schemas import (
    ChallengeActivate,
    ChallengeReviewRequest,
    ChallengeSubmissionCreate,
    LeagueChallengeCreate,
)
from fitleague.services import challenge_service
from fitleague.utils.errors import LeagueRuleError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/leagues/{league_id}/challenges")
async def list_league_challenges(
    league_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.list_league_challenges(session, league_id, user["id"])
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing challenges for league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing challenges: {str(e)}")


@router.post("/api/leagues/{league_id}/challenges")
async def create_league_challenge(
    league_id: int,
    payload: LeagueChallengeCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.create_league_challenge(
            session, league_id, user["id"], payload.model_dump()
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating challenge in league {league_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating challenge: {str(e)}")


@router.post("/api/leagues/{league_id}/challenges/{challenge_id}/activate")
async def activate_league_challenge(
    league_id: int,
    challenge_id: int,
    payload: ChallengeActivate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.activate_league_challenge(
            session, league_id, challenge_id, user["id"], payload.payment_reference
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error activating challenge {challenge_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error activating challenge: {str(e)}")


@router.get("/api/leagues/{league_id}/challenges/{challenge_id}/submissions")
async def list_challenge_submissions(
    league_id: int,
    challenge_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.list_challenge_submissions(
            session, league_id, challenge_id, user["id"]
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing submissions for challenge {challenge_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error listing challenge submissions: {str(e)}")


@router.post("/api/leagues/{league_id}/challenges/{challenge_id}/submissions")
async def submit_challenge_proof(
    league_id: int,
    challenge_id: int,
    payload: ChallengeSubmissionCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.submit_challenge_proof(
            session, league_id, challenge_id, user["id"], payload.proof_url
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error submitting proof for challenge {challenge_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error submitting challenge proof: {str(e)}")


@router.post("/api/challenge-submissions/{submission_id}/validate")
async def review_challenge_submission(
    submission_id: int,
    payload: ChallengeReviewRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Body: {status: "approved" | "rejected", awardedPoints?}"""
    try:
        submission = await challenge_service.review_challenge_submission(
            session,
            submission_id,
            user["id"],
            payload.status,
            awarded_points=payload.awarded_points,
        )
        return {"success": True, "data": submission}
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error reviewing challenge submission {submission_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error reviewing challenge submission: {str(e)}")


@router.post("/api/leagues/{league_id}/challenges/{challenge_id}/publish")
async def publish_challenge(
    league_id: int,
    challenge_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.publish_challenge(session, league_id, challenge_id, user["id"])
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error publishing challenge {challenge_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error publishing challenge: {str(e)}")


@router.post("/api/leagues/{league_id}/challenges/{challenge_id}/close")
async def close_challenge(
    league_id: int,
    challenge_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.close_challenge(session, league_id, challenge_id, user["id"])
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error closing challenge {challenge_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error closing challenge: {str(e)}")


@router.get("/api/leagues/{league_id}/challenges/{challenge_id}/leaderboard")
async def get_challenge_leaderboard(
    league_id: int,
    challenge_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.get_challenge_leaderboard(
            session, league_id, challenge_id, user["id"]
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error loading challenge leaderboard {challenge_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading challenge leaderboard: {str(e)}")


@router.get("/api/leagues/{league_id}/challenges/{challenge_id}/point-distribution")
async def get_point_distribution(
    league_id: int,
    challenge_id: int,
    team_id: Optional[int] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await challenge_service.get_point_distribution(
            session, league_id, challenge_id, user["id"], team_id=team_id
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error loading point distribution for challenge {challenge_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading point distribution: {str(e)}")
