"""Scheduled job endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.api.auth_dependencies import require_cron_secret
from fitleague.database.db import get_db_session
from fitleague.services import submission_service
from fitleague.utils.errors import LeagueRuleError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/cron/auto-approve", dependencies=[Depends(require_cron_secret)])
async def auto_approve(session: AsyncSession = Depends(get_db_session)):
    """Approve entries left pending beyond the auto-approve window."""
    try:
        result = await submission_service.auto_approve_stale_entries(session)
        return {"success": True, **result}
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Auto-approve job failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Auto-approve failed: {str(e)}")
