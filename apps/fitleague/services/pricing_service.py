"""
Challenge activation pricing.
"""

import logging
from datetime import date
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.database.models import ChallengePricing
from fitleague.services.point_distribution_service import round_half_up
from fitleague.utils.constants import DEFAULT_TAX_PERCENT
from fitleague.utils.datetime_utils import parse_ymd, utcnow
from fitleague.utils.errors import NotFound, ValidationFailed

logger = logging.getLogger(__name__)


def _pricing_to_dict(pricing: ChallengePricing) -> Dict:
    return {
        "id": pricing.id,
        "per_day_rate": pricing.per_day_rate,
        "tax": pricing.tax,
        "admin_markup": pricing.admin_markup,
        "modified_at": pricing.modified_at.isoformat() if pricing.modified_at else None,
    }


async def _current_pricing(session: AsyncSession) -> Optional[ChallengePricing]:
    result = await session.execute(
        select(ChallengePricing).order_by(ChallengePricing.id.desc()).limit(1)
    )
    return result.scalar_one_or_none()


async def get_pricing(session: AsyncSession) -> Optional[Dict]:
    pricing = await _current_pricing(session)
    return _pricing_to_dict(pricing) if pricing else None


async def upsert_pricing(
    session: AsyncSession,
    per_day_rate: float,
    tax: Optional[float] = None,
    admin_markup: Optional[float] = None,
) -> Dict:
    """
    Update the pricing row if one exists, otherwise insert it.

    Raises:
        ValidationFailed: negative rate or tax
    """
    if per_day_rate is None or float(per_day_rate) < 0:
        raise ValidationFailed("per_day_rate must be >= 0")
    tax = DEFAULT_TAX_PERCENT if tax is None else float(tax)
    if tax < 0:
        raise ValidationFailed("tax must be >= 0")

    pricing = await _current_pricing(session)
    if pricing is None:
        pricing = ChallengePricing(per_day_rate=float(per_day_rate), tax=tax, admin_markup=admin_markup)
        session.add(pricing)
    else:
        pricing.per_day_rate = float(per_day_rate)
        pricing.tax = tax
        pricing.admin_markup = admin_markup
        pricing.modified_at = utcnow()
    await session.commit()
    await session.refresh(pricing)
    logger.info(f"Challenge pricing set: rate={pricing.per_day_rate}, tax={pricing.tax}%")
    return _pricing_to_dict(pricing)


async def quote_challenge_price(session: AsyncSession, start_date, end_date) -> Dict:
    """
    Price of running a challenge from ``start_date`` to ``end_date`` inclusive.

    amount = days * per_day_rate * (1 + tax / 100)
    """
    start = parse_ymd(start_date)
    end = parse_ymd(end_date)
    if start is None or end is None:
        raise ValidationFailed("start_date and end_date must be YYYY-MM-DD")
    if end < start:
        raise ValidationFailed("end_date must be on or after start_date")

    pricing = await _current_pricing(session)
    if pricing is None:
        raise NotFound("Challenge pricing is not configured")

    days = (end - start).days + 1
    subtotal = days * pricing.per_day_rate
    tax = pricing.tax if pricing.tax is not None else DEFAULT_TAX_PERCENT
    amount = subtotal * (1 + tax / 100)
    return {
        "days": days,
        "per_day_rate": pricing.per_day_rate,
        "tax": tax,
        "subtotal": round_half_up(subtotal, 2),
        "amount": round_half_up(amount, 2),
    }
