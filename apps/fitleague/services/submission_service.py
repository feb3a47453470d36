"""
Effort entry submission and review.

Lifecycle of one logged workout or rest day:

    pending -> approved | rejected_resubmit | rejected_permanent

A ``rejected_resubmit`` entry may be followed by a new pending entry for the
same member, date and type that points back at it through ``reupload_of``.
Hosts and governors may decide or re-open any entry in their league at any
time. Captains may decide pending workouts of other members of their own team
within a review window counted from the entry's creation.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.database.models import (
    EffortEntry,
    EntryStatus,
    EntryType,
    League,
    LeagueMember,
    LeagueStatus,
    RoleName,
    User,
)
from fitleague.services import (
    redis_service,
    rest_day_service,
    role_service,
    run_rate_service,
    settings_service,
)
from fitleague.utils.constants import REJECTED_SUMMARY_TTL_SECONDS, REUPLOAD_GRACE_DAYS, RR_MAX
from fitleague.utils.datetime_utils import (
    end_of_local_day_after,
    ensure_aware,
    local_today,
    parse_ymd,
    utcnow,
)
from fitleague.utils.errors import (
    CapacityExceeded,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

REVIEW_TARGETS = {
    EntryStatus.APPROVED.value,
    EntryStatus.REJECTED_RESUBMIT.value,
    EntryStatus.REJECTED_PERMANENT.value,
    EntryStatus.PENDING.value,  # re-open, hosts and governors only
}
LEGACY_STATUS_ALIASES = {"rejected": EntryStatus.REJECTED_RESUBMIT.value}
REJECTED_STATUSES = [
    EntryStatus.REJECTED_RESUBMIT.value,
    EntryStatus.REJECTED_PERMANENT.value,
    "rejected",
]
REJECTED_SUMMARY_KEY_PREFIX = "rejected_summary:"


def _entry_to_dict(entry: EffortEntry) -> Dict:
    return {
        "id": entry.id,
        "league_member_id": entry.league_member_id,
        "date": entry.date.isoformat() if entry.date else None,
        "type": entry.type,
        "workout_type": entry.workout_type,
        "duration": entry.duration,
        "distance": entry.distance,
        "steps": entry.steps,
        "holes": entry.holes,
        "rr_value": entry.rr_value,
        "status": entry.status,
        "rejection_reason": entry.rejection_reason,
        "proof_url": entry.proof_url,
        "notes": entry.notes,
        "is_auto_rest": entry.is_auto_rest,
        "reupload_of": entry.reupload_of,
        "created_by": entry.created_by,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "modified_by": entry.modified_by,
        "modified_at": entry.modified_at.isoformat() if entry.modified_at else None,
    }


def normalize_review_status(status: str) -> str:
    """Map legacy values (``rejected``) and validate the requested status."""
    status = (status or "").strip().lower()
    status = LEGACY_STATUS_ALIASES.get(status, status)
    if status not in REVIEW_TARGETS:
        raise ValidationFailed(f"Invalid status: {status}")
    return status


def check_review_permission(
    roles: Iterable[str],
    entry_type: str,
    current_status: str,
    target_status: str,
    is_own_entry: bool,
    same_team: bool,
    created_at: datetime,
    now: datetime,
    captain_window_hours: float,
) -> None:
    """
    Enforce who may move an entry from ``current_status`` to ``target_status``.

    Raises:
        InvalidTransition: target equals the current status, or a captain
            acting on an entry that is no longer pending
        Forbidden: role, team, ownership or review window check failed
    """
    roles = set(roles)
    if target_status == current_status:
        raise InvalidTransition(f"Submission is already {current_status}")

    if role_service.is_league_admin(roles):
        return

    if RoleName.CAPTAIN.value not in roles:
        raise Forbidden("You do not have permission to validate this submission")
    if entry_type != EntryType.WORKOUT.value:
        raise Forbidden("Captains can only validate workout submissions")
    if is_own_entry:
        raise Forbidden("You cannot validate your own submission")
    if not same_team:
        raise Forbidden("Captains can only validate submissions from their own team")
    if current_status != EntryStatus.PENDING.value:
        raise InvalidTransition("Only pending submissions can be validated by a captain")
    if target_status == EntryStatus.REJECTED_PERMANENT.value:
        raise Forbidden("Only the host or a governor can permanently reject a submission")
    if target_status == EntryStatus.PENDING.value:
        raise Forbidden("Only the host or a governor can re-open a submission")

    age = ensure_aware(now) - ensure_aware(created_at)
    if age > timedelta(hours=captain_window_hours):
        raise Forbidden(
            f"The captain review window of {captain_window_hours:g} hours has passed; "
            f"ask the host or a governor"
        )


def is_reupload_window_open(
    rejected_at: Optional[datetime],
    tz_offset_minutes: Optional[int],
    now: datetime,
    grace_days: int = REUPLOAD_GRACE_DAYS,
) -> bool:
    """
    A rejected entry can be re-uploaded until the end of the local day
    ``grace_days`` days after the rejection (the next day by default).
    """
    if rejected_at is None:
        return False
    deadline = end_of_local_day_after(rejected_at, tz_offset_minutes, grace_days)
    return ensure_aware(now) <= deadline


async def _member_age(session: AsyncSession, member: LeagueMember, today) -> Optional[int]:
    result = await session.execute(select(User.date_of_birth).where(User.id == member.user_id))
    return run_rate_service.calculate_age(result.scalar_one_or_none(), today)


async def invalidate_rejected_summary(user_id: int) -> None:
    await redis_service.redis_delete(f"{REJECTED_SUMMARY_KEY_PREFIX}{user_id}")


# ============================================================================
# Submission
# ============================================================================

async def create_entry(
    session: AsyncSession,
    user_id: int,
    league_id: int,
    payload: Dict,
    tz_offset_minutes: Optional[int] = 0,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Log a workout or rest day for the current user.

    Args:
        session: Database session
        user_id: Submitting user
        league_id: League
        payload: date, type, workout_type, duration, distance, steps, holes,
            proof_url, notes
        tz_offset_minutes: Client offset used for "today" and the reupload window
        now: Current instant (defaults to now)

    Returns:
        The created entry

    Raises:
        NotMember, ValidationFailed, CapacityExceeded, InvalidTransition
    """
    now = ensure_aware(now) or utcnow()
    league = await role_service.get_league(session, league_id)
    member = await role_service.require_member(session, league_id, user_id)

    if league.status != LeagueStatus.LAUNCHED.value:
        raise ValidationFailed("League is not active")

    entry_date = parse_ymd(payload.get("date"))
    if entry_date is None:
        raise ValidationFailed("date must be a YYYY-MM-DD calendar date")
    today = local_today(tz_offset_minutes, now=now)
    if entry_date < league.start_date or entry_date > league.end_date:
        raise ValidationFailed("Date is outside the league period")
    if entry_date > today:
        raise ValidationFailed("Cannot log entries for future dates")

    entry_type = (payload.get("type") or "").lower()
    if entry_type not in (EntryType.WORKOUT.value, EntryType.REST.value):
        raise ValidationFailed("type must be 'workout' or 'rest'")

    workout_type = (payload.get("workout_type") or "").strip().lower() or None
    if entry_type == EntryType.WORKOUT.value:
        if not workout_type:
            raise ValidationFailed("workout_type is required for workouts")
        age = await _member_age(session, member, today)
        rr_value = run_rate_service.calculate_run_rate(
            entry_type,
            workout_type,
            payload.get("duration"),
            payload.get("distance"),
            payload.get("steps"),
            payload.get("holes"),
            age,
        )
        if not run_rate_service.meets_minimum(entry_type, rr_value):
            raise ValidationFailed(
                "Workout does not meet the minimum effort (RR below 1.0)",
                {"rr_value": round(rr_value, 4)},
            )
    else:
        rr_value = run_rate_service.calculate_run_rate(entry_type)
        ledger = await rest_day_service.get_member_ledger(session, league, member.id)
        pending_rest = await rest_day_service.count_pending_rest_days(session, member.id)
        if ledger["remaining"] - pending_rest < 1:
            raise CapacityExceeded(
                "No rest days remaining",
                {"remaining": ledger["remaining"], "pending": pending_rest},
            )

    result = await session.execute(
        select(EffortEntry)
        .where(
            EffortEntry.league_member_id == member.id,
            EffortEntry.date == entry_date,
            EffortEntry.type == entry_type,
        )
        .order_by(EffortEntry.id.desc())
        .limit(1)
    )
    latest = result.scalar_one_or_none()

    reupload_of = None
    if latest is not None:
        if latest.status in (EntryStatus.PENDING.value, EntryStatus.APPROVED.value):
            raise ValidationFailed(f"An entry for {entry_date.isoformat()} already exists")
        if latest.status == EntryStatus.REJECTED_PERMANENT.value:
            raise InvalidTransition("This entry was permanently rejected and cannot be resubmitted")
        rejected_at = latest.modified_at or latest.created_at
        grace_days = await settings_service.get_reupload_grace_days(session)
        if not is_reupload_window_open(rejected_at, tz_offset_minutes, now, grace_days):
            raise InvalidTransition("The reupload window for this entry has closed")
        reupload_of = latest.id

    entry = EffortEntry(
        league_member_id=member.id,
        date=entry_date,
        type=entry_type,
        workout_type=workout_type if entry_type == EntryType.WORKOUT.value else None,
        duration=payload.get("duration"),
        distance=payload.get("distance"),
        steps=payload.get("steps"),
        holes=payload.get("holes"),
        rr_value=rr_value,
        status=EntryStatus.PENDING.value,
        proof_url=payload.get("proof_url"),
        notes=payload.get("notes"),
        reupload_of=reupload_of,
        created_by=user_id,
        created_at=now,
    )
    session.add(entry)
    await session.flush()
    await session.commit()
    await session.refresh(entry)
    logger.info(
        f"Member {member.id} logged {entry_type} entry {entry.id} for {entry_date.isoformat()} "
        f"(rr={rr_value:.2f}, reupload_of={reupload_of})"
    )
    return _entry_to_dict(entry)


# ============================================================================
# Review
# ============================================================================

async def validate_submission(
    session: AsyncSession,
    entry_id: int,
    user_id: int,
    status: str,
    rejection_reason: Optional[str] = None,
    awarded_points: Optional[float] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Approve, reject or re-open an effort entry.

    On approval a workout stores its RR recomputed from the submitter's age,
    unless a host or governor supplies ``awarded_points`` in [0, 2.0].

    Raises:
        NotFound: entry or its membership missing
        NotMember: reviewer not in the entry's league
        ValidationFailed: bad status or awarded points
        InvalidTransition, Forbidden: see ``check_review_permission``
    """
    now = ensure_aware(now) or utcnow()
    target = normalize_review_status(status)

    result = await session.execute(
        select(EffortEntry, LeagueMember)
        .join(LeagueMember, LeagueMember.id == EffortEntry.league_member_id)
        .where(EffortEntry.id == entry_id)
    )
    row = result.first()
    if row is None:
        raise NotFound("Submission not found")
    entry, owner = row

    roles = await role_service.get_user_roles(session, user_id, owner.league_id)
    window_hours = await settings_service.get_captain_window_hours(session)
    same_team = await role_service.is_on_team(session, user_id, owner.league_id, owner.team_id)

    try:
        check_review_permission(
            roles,
            entry.type,
            LEGACY_STATUS_ALIASES.get(entry.status, entry.status),
            target,
            is_own_entry=owner.user_id == user_id,
            same_team=same_team,
            created_at=entry.created_at,
            now=now,
            captain_window_hours=window_hours,
        )
    except (Forbidden, InvalidTransition) as e:
        logger.warning(f"User {user_id} denied review of entry {entry_id} -> {target}: {e.message}")
        raise

    if target in (EntryStatus.APPROVED.value, EntryStatus.PENDING.value):
        superseded = await session.execute(
            select(EffortEntry.id).where(EffortEntry.reupload_of == entry.id).limit(1)
        )
        if superseded.scalar_one_or_none() is not None:
            raise InvalidTransition("This entry was superseded by a resubmission")

    if awarded_points is not None:
        if not role_service.is_league_admin(roles):
            raise Forbidden("Only the host or a governor can override awarded points")
        if target != EntryStatus.APPROVED.value:
            raise ValidationFailed("awarded_points can only be set when approving")
        try:
            awarded_points = float(awarded_points)
        except (TypeError, ValueError):
            raise ValidationFailed("awarded_points must be a number")
        if not 0 <= awarded_points <= RR_MAX:
            raise ValidationFailed(f"awarded_points must be between 0 and {RR_MAX}")

    if target == EntryStatus.APPROVED.value:
        if awarded_points is not None:
            entry.rr_value = awarded_points
        elif entry.type == EntryType.WORKOUT.value:
            age = await _member_age(session, owner, now.date())
            entry.rr_value = run_rate_service.calculate_run_rate(
                entry.type,
                entry.workout_type,
                entry.duration,
                entry.distance,
                entry.steps,
                entry.holes,
                age,
            )
        else:
            entry.rr_value = run_rate_service.calculate_run_rate(entry.type)
        entry.rejection_reason = None
    elif target in (EntryStatus.REJECTED_RESUBMIT.value, EntryStatus.REJECTED_PERMANENT.value):
        entry.rejection_reason = rejection_reason

    previous = entry.status
    entry.status = target
    entry.modified_by = user_id
    entry.modified_at = now
    await session.flush()
    await session.commit()
    await session.refresh(entry)
    await invalidate_rejected_summary(owner.user_id)

    logger.info(f"Entry {entry_id} moved {previous} -> {target} by user {user_id}")
    return _entry_to_dict(entry)


async def list_league_submissions(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    status: Optional[str] = None,
) -> List[Dict]:
    """
    Entries visible to a reviewer: everything for hosts and governors, the
    captain's own team for captains.

    Raises:
        Forbidden: players
    """
    roles = await role_service.get_user_roles(session, user_id, league_id)
    query = (
        select(EffortEntry, LeagueMember.user_id, LeagueMember.team_id, User.username)
        .join(LeagueMember, LeagueMember.id == EffortEntry.league_member_id)
        .join(User, User.id == LeagueMember.user_id)
        .where(LeagueMember.league_id == league_id)
    )
    if not role_service.is_league_admin(roles):
        if RoleName.CAPTAIN.value not in roles:
            raise Forbidden("You do not have permission to view league submissions")
        member = await role_service.require_member(session, league_id, user_id)
        if member.team_id is None:
            return []
        query = query.where(LeagueMember.team_id == member.team_id)
    if status:
        query = query.where(EffortEntry.status == status)

    result = await session.execute(query.order_by(EffortEntry.date.desc(), EffortEntry.id.desc()))
    submissions = []
    for entry, owner_user_id, team_id, username in result.all():
        item = _entry_to_dict(entry)
        item.update({"user_id": owner_user_id, "team_id": team_id, "username": username})
        submissions.append(item)
    return submissions


async def auto_approve_stale_entries(session: AsyncSession, now: Optional[datetime] = None) -> Dict:
    """
    Approve every entry that has been pending longer than the auto-approve window.

    RR values are kept as computed at submission. ``modified_by`` is left empty
    to mark a system action.
    """
    now = ensure_aware(now) or utcnow()
    hours = await settings_service.get_auto_approve_hours(session)
    cutoff = now - timedelta(hours=hours)

    result = await session.execute(
        select(EffortEntry.id).where(
            EffortEntry.status == EntryStatus.PENDING.value,
            EffortEntry.created_at < cutoff,
        )
    )
    entry_ids = list(result.scalars().all())
    if not entry_ids:
        logger.info("No entries to auto-approve")
        return {"count": 0, "entry_ids": [], "message": "No entries to auto-approve"}

    await session.execute(
        update(EffortEntry)
        .where(EffortEntry.id.in_(entry_ids))
        .values(status=EntryStatus.APPROVED.value, modified_by=None, modified_at=now)
    )
    await session.commit()
    logger.info(f"Auto-approved {len(entry_ids)} entries pending for more than {hours:g} hours")
    return {
        "count": len(entry_ids),
        "entry_ids": entry_ids,
        "message": f"Auto-approved {len(entry_ids)} submissions",
    }


async def get_rejected_summary(
    session: AsyncSession, user_id: int, force_refresh: bool = False
) -> Dict:
    """
    Per-league count of the user's rejected entries, most recent first.

    Cached per user for a few minutes; ``force_refresh`` bypasses the cache.
    """
    cache_key = f"{REJECTED_SUMMARY_KEY_PREFIX}{user_id}"
    if not force_refresh:
        cached = await redis_service.redis_get_json(cache_key)
        if cached is not None:
            return {**cached, "cached": True}

    result = await session.execute(
        select(
            League.id,
            League.name,
            func.count(EffortEntry.id),
            func.max(EffortEntry.date),
        )
        .join(LeagueMember, LeagueMember.league_id == League.id)
        .join(EffortEntry, EffortEntry.league_member_id == LeagueMember.id)
        .where(
            LeagueMember.user_id == user_id,
            EffortEntry.status.in_(REJECTED_STATUSES),
        )
        .group_by(League.id, League.name)
    )
    leagues = [
        {
            "league_id": league_id,
            "league_name": name,
            "rejected_count": count,
            "latest_date": latest.isoformat() if latest else None,
        }
        for league_id, name, count, latest in result.all()
    ]
    leagues.sort(key=lambda item: item["latest_date"] or "", reverse=True)

    summary = {
        "total_rejected": sum(item["rejected_count"] for item in leagues),
        "leagues": leagues,
        "cache_ttl_seconds": REJECTED_SUMMARY_TTL_SECONDS,
    }
    await redis_service.redis_set_json(cache_key, summary, REJECTED_SUMMARY_TTL_SECONDS)
    return {**summary, "cached": False}
