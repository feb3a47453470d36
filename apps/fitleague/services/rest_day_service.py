"""
Rest day ledger, automatic rest day assignment and rest day donations.

Two caps apply to rest days at the same time and are tracked separately:

- a weekly ceiling (``League.rest_days`` per Sunday-Saturday week), enforced
  when missed days are auto-assigned;
- a league-wide allowance (``League.total_rest_days``), consumed across the
  whole league and adjusted by approved donations:

      used      = approved rest days + days donated - days received
      remaining = max(0, total allowed - used)
"""

import logging
import math
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from fitleague.database.db import reserve_commit
from fitleague.database.models import (
    DonationStatus,
    EffortEntry,
    EntryStatus,
    EntryType,
    League,
    LeagueMember,
    RestDayDonation,
    RoleName,
    Team,
    User,
)
from fitleague.services import role_service
from fitleague.utils.constants import REST_DAY_RR
from fitleague.utils.datetime_utils import (
    format_ymd,
    league_days,
    local_today,
    parse_ymd,
    utcnow,
    week_start_sunday,
)
from fitleague.utils.errors import (
    CapacityExceeded,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

REJECTED_ENTRY_STATUSES = {
    EntryStatus.REJECTED_RESUBMIT.value,
    EntryStatus.REJECTED_PERMANENT.value,
}
TERMINAL_DONATION_STATUSES = {DonationStatus.APPROVED.value, DonationStatus.REJECTED.value}

DONATION_MESSAGES = {
    DonationStatus.APPROVED.value: "Donation fully approved!",
    DonationStatus.CAPTAIN_APPROVED.value: "Donation approved by captain. Awaiting Governor/Host approval.",
    DonationStatus.REJECTED.value: "Donation rejected.",
}


# ============================================================================
# Pure ledger arithmetic
# ============================================================================

def total_rest_allowance(
    rest_days_per_week: Optional[int],
    total_rest_days: Optional[int],
    start_date: date,
    end_date: date,
) -> int:
    """League-wide rest day allowance; derived from the weekly allowance when unset."""
    if total_rest_days is not None:
        return max(0, int(total_rest_days))
    weeks = math.ceil(league_days(start_date, end_date) / 7)
    return max(0, int(rest_days_per_week or 0)) * weeks


def compute_ledger(total_allowed: int, auto_used: int, donated: int, received: int) -> Dict:
    """
    Apply the ledger formula.

    Returns:
        Dict with total_allowed, used, remaining and is_at_limit
    """
    used = auto_used + donated - received
    return {
        "total_allowed": total_allowed,
        "used": used,
        "remaining": max(0, total_allowed - used),
        "is_at_limit": used >= total_allowed,
    }


def weekly_cap_allows(used_in_week: int, weekly_allowance: int) -> bool:
    """Whether one more rest day fits in a week that already has ``used_in_week``."""
    return used_in_week < weekly_allowance


def league_cap_allows(used_in_league: int, total_allowed: int) -> bool:
    """Whether one more rest day fits in the league-wide allowance."""
    return used_in_league < total_allowed


def plan_auto_rest_days(
    requested: Iterable,
    league_start: date,
    league_end: date,
    today: date,
    existing_entries: Iterable[Tuple[date, str, str]],
    weekly_allowance: int,
    league_used: int,
    total_allowed: int,
) -> Tuple[List[date], List[date]]:
    """
    Decide which missed days become rest days.

    A requested date is assigned only if it is inside the league window,
    strictly before ``today``, has no entry of any kind yet, and both the
    weekly cap of its Sunday-start week and the league-wide cap still have
    room. Dates are processed in chronological order and each assignment
    consumes from both caps.

    Args:
        requested: Dates or YYYY-MM-DD strings (malformed values are dropped)
        league_start: First league day
        league_end: Last league day (inclusive)
        today: The caller's local calendar date
        existing_entries: (date, type, status) for the member's entries
        weekly_allowance: Rest days allowed per week
        league_used: Rest days already consumed league-wide
        total_allowed: League-wide allowance

    Returns:
        (assigned, skipped) lists of dates, each sorted
    """
    dates = sorted({d for d in (parse_ymd(value) for value in requested) if d is not None})

    has_entry = set()
    weekly_used: Dict[date, int] = {}
    for entry_date, entry_type, status in existing_entries:
        has_entry.add(entry_date)
        if entry_type == EntryType.REST.value and status not in REJECTED_ENTRY_STATUSES:
            week = week_start_sunday(entry_date)
            weekly_used[week] = weekly_used.get(week, 0) + 1

    assigned: List[date] = []
    skipped: List[date] = []
    for day in dates:
        if day < league_start or day > league_end or day >= today or day in has_entry:
            skipped.append(day)
            continue
        week = week_start_sunday(day)
        used = weekly_used.get(week, 0)
        if not weekly_cap_allows(used, weekly_allowance):
            skipped.append(day)
            continue
        if not league_cap_allows(league_used, total_allowed):
            skipped.append(day)
            continue
        assigned.append(day)
        has_entry.add(day)
        weekly_used[week] = used + 1
        league_used += 1

    return assigned, skipped


# ============================================================================
# Ledger queries
# ============================================================================

def league_allowance(league: League) -> int:
    return total_rest_allowance(
        league.rest_days, league.total_rest_days, league.start_date, league.end_date
    )


async def _count_rest_entries(session: AsyncSession, member_id: int, status: str) -> int:
    result = await session.execute(
        select(func.count(EffortEntry.id)).where(
            EffortEntry.league_member_id == member_id,
            EffortEntry.type == EntryType.REST.value,
            EffortEntry.status == status,
        )
    )
    return result.scalar() or 0


async def _sum_donations(session: AsyncSession, member_id: int, as_donor: bool) -> int:
    column = RestDayDonation.donor_member_id if as_donor else RestDayDonation.receiver_member_id
    result = await session.execute(
        select(func.coalesce(func.sum(RestDayDonation.days_transferred), 0)).where(
            column == member_id,
            RestDayDonation.status == DonationStatus.APPROVED.value,
        )
    )
    return int(result.scalar() or 0)


async def get_member_ledger(session: AsyncSession, league: League, member_id: int) -> Dict:
    """Ledger for one member, recomputed from the current rows."""
    auto_used = await _count_rest_entries(session, member_id, EntryStatus.APPROVED.value)
    donated = await _sum_donations(session, member_id, as_donor=True)
    received = await _sum_donations(session, member_id, as_donor=False)
    ledger = compute_ledger(league_allowance(league), auto_used, donated, received)
    ledger.update({"auto_used": auto_used, "donated": donated, "received": received})
    return ledger


async def count_pending_rest_days(session: AsyncSession, member_id: int) -> int:
    return await _count_rest_entries(session, member_id, EntryStatus.PENDING.value)


async def get_rest_day_stats(session: AsyncSession, league_id: int, user_id: int) -> Dict:
    """
    Rest day usage for the current user in a league.

    Raises:
        NotFound: league missing
        NotMember: user not in league
    """
    league = await role_service.get_league(session, league_id)
    member = await role_service.require_member(session, league_id, user_id)
    ledger = await get_member_ledger(session, league, member.id)
    pending = await count_pending_rest_days(session, member.id)

    exemptions = await session.execute(
        select(func.count(EffortEntry.id)).where(
            EffortEntry.league_member_id == member.id,
            EffortEntry.type == EntryType.REST.value,
            EffortEntry.status == EntryStatus.PENDING.value,
            EffortEntry.notes.ilike("%EXEMPTION_REQUEST%"),
        )
    )

    return {
        "totalAllowed": ledger["total_allowed"],
        "weeklyAllowance": league.rest_days,
        "used": ledger["used"],
        "autoUsed": ledger["auto_used"],
        "pending": pending,
        "remaining": ledger["remaining"],
        "isAtLimit": ledger["is_at_limit"],
        "exemptionsPending": exemptions.scalar() or 0,
        "donations": {"received": ledger["received"], "donated": ledger["donated"]},
    }


# ============================================================================
# Automatic rest days
# ============================================================================

async def assign_auto_rest_days(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    dates: List[str],
    tz_offset_minutes: Optional[int] = 0,
    tz_name: Optional[str] = None,
    now=None,
) -> Dict:
    """
    Fill missed past days with approved rest days, within both caps.

    Returns:
        {"assignedDates": [...], "skippedDates": [...]} as YYYY-MM-DD strings
    """
    league = await role_service.get_league(session, league_id)
    member = await role_service.require_member(session, league_id, user_id)

    try:
        today = local_today(tz_offset_minutes, tz_name, now)
    except ValueError as e:
        raise ValidationFailed(str(e))

    requested = sorted({d for d in (parse_ymd(v) for v in dates or []) if d is not None})
    if not requested:
        return {"assignedDates": [], "skippedDates": []}

    weekly_allowance = int(league.rest_days or 0)
    if weekly_allowance <= 0:
        return {"assignedDates": [], "skippedDates": [format_ymd(d) for d in requested]}

    # Whole weeks, so rest days already taken elsewhere in a week count against it
    range_start = week_start_sunday(requested[0])
    range_end = week_start_sunday(requested[-1]) + timedelta(days=6)

    async with reserve_commit(session):
        result = await session.execute(
            select(EffortEntry.date, EffortEntry.type, EffortEntry.status).where(
                EffortEntry.league_member_id == member.id,
                EffortEntry.date >= range_start,
                EffortEntry.date <= range_end,
            )
        )
        existing = [(row.date, row.type, row.status) for row in result.all()]
        ledger = await get_member_ledger(session, league, member.id)
        pending = await count_pending_rest_days(session, member.id)
        assigned, skipped = plan_auto_rest_days(
            requested,
            league.start_date,
            league.end_date,
            today,
            existing,
            weekly_allowance,
            ledger["used"] + pending,
            ledger["total_allowed"],
        )
        for day in assigned:
            session.add(
                EffortEntry(
                    league_member_id=member.id,
                    date=day,
                    type=EntryType.REST.value,
                    rr_value=REST_DAY_RR,
                    status=EntryStatus.APPROVED.value,
                    is_auto_rest=True,
                    created_by=user_id,
                    notes="Auto-assigned rest day",
                )
            )

    if assigned:
        logger.info(
            f"Auto-assigned {len(assigned)} rest days for member {member.id} in league {league_id}"
        )
    return {
        "assignedDates": [format_ymd(d) for d in assigned],
        "skippedDates": [format_ymd(d) for d in skipped],
    }


# ============================================================================
# Donations
# ============================================================================

def _donation_to_dict(donation: RestDayDonation) -> Dict:
    return {
        "id": donation.id,
        "league_id": donation.league_id,
        "donor_member_id": donation.donor_member_id,
        "receiver_member_id": donation.receiver_member_id,
        "days_transferred": donation.days_transferred,
        "status": donation.status,
        "notes": donation.notes,
        "proof_url": donation.proof_url,
        "captain_approved_by": donation.captain_approved_by,
        "captain_approved_at": donation.captain_approved_at.isoformat() if donation.captain_approved_at else None,
        "final_approved_by": donation.final_approved_by,
        "final_approved_at": donation.final_approved_at.isoformat() if donation.final_approved_at else None,
        "created_at": donation.created_at.isoformat() if donation.created_at else None,
        "updated_at": donation.updated_at.isoformat() if donation.updated_at else None,
    }


async def create_donation(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    receiver_member_id: int,
    days_transferred: int,
    notes: Optional[str] = None,
    proof_url: Optional[str] = None,
) -> Dict:
    """
    Request a transfer of rest days from the current user to another member.

    Raises:
        ValidationFailed: bad day count, self-donation, receiver not in league
        CapacityExceeded: the donor does not currently have enough days
    """
    if isinstance(days_transferred, bool) or not isinstance(days_transferred, int) or days_transferred < 1:
        raise ValidationFailed("days_transferred must be a positive integer")

    league = await role_service.get_league(session, league_id)
    donor = await role_service.require_member(session, league_id, user_id)
    if donor.id == receiver_member_id:
        raise ValidationFailed("Cannot donate to yourself")

    receiver = (
        await session.execute(
            select(LeagueMember).where(
                LeagueMember.id == receiver_member_id,
                LeagueMember.league_id == league_id,
            )
        )
    ).scalar_one_or_none()
    if receiver is None:
        raise ValidationFailed("Receiver not found in this league")

    ledger = await get_member_ledger(session, league, donor.id)
    if ledger["remaining"] < days_transferred:
        raise CapacityExceeded(
            f"You only have {ledger['remaining']} rest days remaining, cannot donate {days_transferred}",
            {"remaining": ledger["remaining"]},
        )

    donation = RestDayDonation(
        league_id=league_id,
        donor_member_id=donor.id,
        receiver_member_id=receiver.id,
        days_transferred=days_transferred,
        notes=notes,
        proof_url=proof_url,
        status=DonationStatus.PENDING.value,
    )
    session.add(donation)
    await session.flush()
    await session.commit()
    await session.refresh(donation)
    logger.info(
        f"Member {donor.id} requested donation of {days_transferred} rest days to member {receiver.id} "
        f"in league {league_id}"
    )
    return _donation_to_dict(donation)


async def list_donations(session: AsyncSession, league_id: int, user_id: int) -> Dict:
    """
    Donations in a league with donor/receiver info, the member list for
    choosing a receiver, and the caller's own role and membership.
    """
    member = await role_service.require_member(session, league_id, user_id)
    primary_role = await role_service.get_primary_role(session, user_id, league_id)

    DonorMember = aliased(LeagueMember)
    ReceiverMember = aliased(LeagueMember)
    DonorUser = aliased(User)
    ReceiverUser = aliased(User)
    result = await session.execute(
        select(
            RestDayDonation,
            DonorMember.team_id,
            DonorUser.id,
            DonorUser.username,
            ReceiverUser.id,
            ReceiverUser.username,
        )
        .join(DonorMember, DonorMember.id == RestDayDonation.donor_member_id)
        .join(DonorUser, DonorUser.id == DonorMember.user_id)
        .join(ReceiverMember, ReceiverMember.id == RestDayDonation.receiver_member_id)
        .join(ReceiverUser, ReceiverUser.id == ReceiverMember.user_id)
        .where(RestDayDonation.league_id == league_id)
        .order_by(RestDayDonation.created_at.desc(), RestDayDonation.id.desc())
    )
    donations = []
    for donation, donor_team_id, donor_user_id, donor_name, receiver_user_id, receiver_name in result.all():
        item = _donation_to_dict(donation)
        item["donor"] = {
            "member_id": donation.donor_member_id,
            "team_id": donor_team_id,
            "user_id": donor_user_id,
            "username": donor_name,
        }
        item["receiver"] = {
            "member_id": donation.receiver_member_id,
            "user_id": receiver_user_id,
            "username": receiver_name,
        }
        donations.append(item)

    members_result = await session.execute(
        select(LeagueMember.id, LeagueMember.team_id, User.id, User.username, Team.name)
        .join(User, User.id == LeagueMember.user_id)
        .outerjoin(Team, Team.id == LeagueMember.team_id)
        .where(LeagueMember.league_id == league_id)
        .order_by(User.username)
    )
    members = [
        {
            "league_member_id": member_id,
            "user_id": member_user_id,
            "username": username,
            "team_id": team_id,
            "team_name": team_name,
        }
        for member_id, team_id, member_user_id, username, team_name in members_result.all()
    ]

    return {
        "donations": donations,
        "members": members,
        "user_role": primary_role or RoleName.PLAYER.value,
        "user_member_id": member.id,
        "user_team_id": member.team_id,
    }


def resolve_donation_transition(
    action: str,
    current_status: str,
    roles: Iterable[str],
    on_donor_team: bool,
) -> Optional[str]:
    """
    Next donation status for ``action`` by an actor with ``roles``, or None if
    the actor may not act.

    Captains act on pending donations whose donor is on their own team.
    Hosts and governors may give the captain-stage approval themselves, give
    the final approval, or reject any donation that is not yet decided.
    """
    roles = set(roles)
    is_captain = RoleName.CAPTAIN.value in roles and on_donor_team
    is_admin = role_service.is_league_admin(roles)
    pending = current_status == DonationStatus.PENDING.value
    captain_approved = current_status == DonationStatus.CAPTAIN_APPROVED.value

    if action == "reject":
        if is_captain and pending:
            return DonationStatus.REJECTED.value
        if is_admin and (pending or captain_approved):
            return DonationStatus.REJECTED.value
        return None

    if action == "approve":
        if is_captain and pending:
            return DonationStatus.CAPTAIN_APPROVED.value
        if is_admin and captain_approved:
            return DonationStatus.APPROVED.value
        if is_admin and pending:
            return DonationStatus.CAPTAIN_APPROVED.value
        return None

    raise ValidationFailed("action must be 'approve' or 'reject'")


async def act_on_donation(
    session: AsyncSession,
    league_id: int,
    donation_id: int,
    user_id: int,
    action: str,
) -> Dict:
    """
    Approve or reject a donation, one stage at a time.

    Final approval re-checks the donor's remaining allowance inside the same
    transaction as the status change.

    Returns:
        {"donation": {...}, "message": str}

    Raises:
        NotFound: donation not in this league
        InvalidTransition: donation already approved or rejected
        Forbidden: actor may not act on this donation at its current stage
        CapacityExceeded: donor no longer has enough rest days
    """
    if action not in ("approve", "reject"):
        raise ValidationFailed("action must be 'approve' or 'reject'")

    league = await role_service.get_league(session, league_id)
    roles = await role_service.get_user_roles(session, user_id, league_id)

    async with reserve_commit(session):
        row = (
            await session.execute(
                select(RestDayDonation, LeagueMember.team_id)
                .join(LeagueMember, LeagueMember.id == RestDayDonation.donor_member_id)
                .where(
                    RestDayDonation.id == donation_id,
                    RestDayDonation.league_id == league_id,
                )
            )
        ).first()
        if row is None:
            raise NotFound("Donation not found")
        donation, donor_team_id = row

        if donation.status in TERMINAL_DONATION_STATUSES:
            raise InvalidTransition(
                f"Donation is already {donation.status}",
                {"current_status": donation.status},
            )

        on_donor_team = await role_service.is_on_team(session, user_id, league_id, donor_team_id)
        new_status = resolve_donation_transition(action, donation.status, roles, on_donor_team)
        if new_status is None:
            logger.warning(
                f"User {user_id} denied {action} on donation {donation_id} (status {donation.status})"
            )
            raise Forbidden(
                "You do not have permission to perform this action on this donation",
                {"current_status": donation.status, "your_roles": sorted(roles)},
            )

        now = utcnow()
        if new_status == DonationStatus.APPROVED.value:
            donor_ledger = await get_member_ledger(session, league, donation.donor_member_id)
            if donor_ledger["remaining"] < donation.days_transferred:
                raise CapacityExceeded(
                    f"Donor only has {donor_ledger['remaining']} rest days remaining, "
                    f"cannot donate {donation.days_transferred}",
                    {"remaining": donor_ledger["remaining"]},
                )
            donation.final_approved_by = user_id
            donation.final_approved_at = now
        elif new_status == DonationStatus.CAPTAIN_APPROVED.value:
            donation.captain_approved_by = user_id
            donation.captain_approved_at = now

        donation.status = new_status
        donation.updated_at = now
        await session.flush()

    await session.refresh(donation)
    logger.info(f"Donation {donation_id} moved to {new_status} by user {user_id}")
    return {"donation": _donation_to_dict(donation), "message": DONATION_MESSAGES[new_status]}
