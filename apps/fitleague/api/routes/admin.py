"""Platform admin route handlers: pricing, runtime settings, user provisioning."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.api.auth_dependencies import require_platform_admin, require_user
from fitleague.database.db import get_db_session
from fitleague.models.schemas import PriceQuoteRequest, PricingUpdate, SettingUpdate, UserCreate
from fitleague.services import pricing_service, settings_service, user_service
from fitleague.utils.datetime_utils import parse_ymd
from fitleague.utils.errors import LeagueRuleError, NotFound, ValidationFailed

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/challenge-pricing")
async def get_pricing(
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        pricing = await pricing_service.get_pricing(session)
        if pricing is None:
            raise NotFound("Challenge pricing is not configured")
        return pricing
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error loading pricing: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error loading pricing: {str(e)}")


@router.put("/api/challenge-pricing")
async def upsert_pricing(
    payload: PricingUpdate,
    user: dict = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await pricing_service.upsert_pricing(
            session, payload.per_day_rate, tax=payload.tax, admin_markup=payload.admin_markup
        )
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error updating pricing: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating pricing: {str(e)}")


@router.post("/api/challenge-pricing/quote")
async def quote_challenge_price(
    payload: PriceQuoteRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await pricing_service.quote_challenge_price(session, payload.start_date, payload.end_date)
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error quoting challenge price: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error quoting price: {str(e)}")


@router.put("/api/admin/settings/{key}")
async def update_setting(
    key: str,
    payload: SettingUpdate,
    user: dict = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await settings_service.set_setting(session, key, payload.value)
        return {"key": key, "value": payload.value}
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error updating setting {key}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error updating setting: {str(e)}")


@router.post("/api/admin/users")
async def create_user(
    payload: UserCreate,
    user: dict = Depends(require_platform_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Provision a profile for an identity issued by the identity provider."""
    date_of_birth = parse_ymd(payload.date_of_birth) if payload.date_of_birth else None
    if payload.date_of_birth and date_of_birth is None:
        raise ValidationFailed("date_of_birth must be YYYY-MM-DD")
    try:
        user_id = await user_service.create_user(
            session,
            payload.username,
            email=payload.email,
            date_of_birth=date_of_birth,
            platform_role=payload.platform_role,
        )
        return await user_service.get_user_by_id(session, user_id)
    except ValueError as e:
        raise ValidationFailed(str(e))
    except (LeagueRuleError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating user: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating user: {str(e)}")
