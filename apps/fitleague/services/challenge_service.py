"""
League challenges: activation, proof submission, review, score aggregation
and publishing.

A challenge's effective status is derived at every read and write from its
stored status and its date window, so it never drifts from the calendar.
Scores are always recomputed in full from the approved submissions, which
makes the aggregation idempotent.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.database.db import reserve_commit
from fitleague.database.models import (
    Challenge,
    ChallengeIndividualScore,
    ChallengeStatus,
    ChallengeSubmission,
    ChallengeTeamScore,
    ChallengeType,
    LeagueChallenge,
    LeagueMember,
    SubmissionStatus,
    Team,
    User,
)
from fitleague.services import point_distribution_service, pricing_service, role_service
from fitleague.utils.datetime_utils import parse_ymd, utcnow
from fitleague.utils.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

KNOWN_STATUSES = {s.value for s in ChallengeStatus}
# Stored values that are never overridden by the date window
STICKY_STATUSES = {
    ChallengeStatus.DRAFT.value,
    ChallengeStatus.PUBLISHED.value,
}
REVIEWABLE_STATUSES = {
    ChallengeStatus.SUBMISSION_CLOSED.value,
    ChallengeStatus.PUBLISHED.value,
}
CHALLENGE_TYPES = {t.value for t in ChallengeType}


def normalize_stored_status(status: Optional[str]) -> str:
    """Legacy ``upcoming`` reads as scheduled; missing or unknown values read as draft."""
    if not status:
        return ChallengeStatus.DRAFT.value
    if status == "upcoming":
        return ChallengeStatus.SCHEDULED.value
    return status if status in KNOWN_STATUSES else ChallengeStatus.DRAFT.value


def effective_status(
    stored: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date],
    today: date,
) -> str:
    """
    Status of a league challenge as of ``today``.

    Draft and published are used as stored. Any other stored value, closed
    included, follows the date window: before start is scheduled, inside
    [start, end] is active, after end is submission_closed. With only an end
    date, a past end still closes submissions; with no usable dates the stored
    value stands.
    """
    status = normalize_stored_status(stored)
    if status in STICKY_STATUSES:
        return status
    if start_date and end_date:
        if today < start_date:
            return ChallengeStatus.SCHEDULED.value
        if today <= end_date:
            return ChallengeStatus.ACTIVE.value
        return ChallengeStatus.SUBMISSION_CLOSED.value
    if end_date and today > end_date:
        return ChallengeStatus.SUBMISSION_CLOSED.value
    return status


def _challenge_to_dict(challenge: LeagueChallenge, today: date) -> Dict:
    return {
        "id": challenge.id,
        "league_id": challenge.league_id,
        "challenge_id": challenge.challenge_id,
        "name": challenge.name,
        "description": challenge.description,
        "challenge_type": challenge.challenge_type,
        "total_points": challenge.total_points,
        "start_date": challenge.start_date.isoformat() if challenge.start_date else None,
        "end_date": challenge.end_date.isoformat() if challenge.end_date else None,
        "status": challenge.status,
        "effective_status": effective_status(
            challenge.status, challenge.start_date, challenge.end_date, today
        ),
        "payment_reference": challenge.payment_reference,
        "pricing_id": challenge.pricing_id,
    }


def _submission_to_dict(submission: ChallengeSubmission) -> Dict:
    return {
        "id": submission.id,
        "league_challenge_id": submission.league_challenge_id,
        "league_member_id": submission.league_member_id,
        "team_id": submission.team_id,
        "proof_url": submission.proof_url,
        "status": submission.status,
        "awarded_points": submission.awarded_points,
        "reviewed_by": submission.reviewed_by,
        "reviewed_at": submission.reviewed_at.isoformat() if submission.reviewed_at else None,
        "created_at": submission.created_at.isoformat() if submission.created_at else None,
    }


async def _get_league_challenge(
    session: AsyncSession, league_id: int, league_challenge_id: int
) -> LeagueChallenge:
    result = await session.execute(
        select(LeagueChallenge).where(
            LeagueChallenge.id == league_challenge_id,
            LeagueChallenge.league_id == league_id,
        )
    )
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise NotFound("Challenge not found")
    return challenge


async def get_team_sizes(session: AsyncSession, league_id: int) -> Tuple[Dict[int, int], int]:
    """Member count per team in a league, and the largest team size (at least 1)."""
    result = await session.execute(
        select(LeagueMember.team_id, func.count(LeagueMember.id))
        .where(LeagueMember.league_id == league_id, LeagueMember.team_id.isnot(None))
        .group_by(LeagueMember.team_id)
    )
    sizes = {team_id: count for team_id, count in result.all()}
    return sizes, max(sizes.values(), default=1)


# ============================================================================
# Configuration
# ============================================================================

async def create_league_challenge(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    payload: Dict,
) -> Dict:
    """
    Add a challenge to a league, from a template (``challenge_id``) or custom.

    The challenge starts as draft until it is activated.
    """
    await role_service.get_league(session, league_id)
    await role_service.require_league_admin(session, user_id, league_id)

    template = None
    if payload.get("challenge_id") is not None:
        template = (
            await session.execute(select(Challenge).where(Challenge.id == payload["challenge_id"]))
        ).scalar_one_or_none()
        if template is None:
            raise NotFound("Challenge template not found")

    name = payload.get("name") or (template.name if template else None)
    challenge_type = payload.get("challenge_type") or (
        template.challenge_type if template else ChallengeType.INDIVIDUAL.value
    )
    total_points = payload.get("total_points")
    if total_points is None and template is not None:
        total_points = template.total_points
    start_date = parse_ymd(payload.get("start_date"))
    end_date = parse_ymd(payload.get("end_date"))

    if not name:
        raise ValidationFailed("name is required")
    if challenge_type not in CHALLENGE_TYPES:
        raise ValidationFailed(f"Invalid challenge_type: {challenge_type}")
    if total_points is not None and float(total_points) < 0:
        raise ValidationFailed("total_points must be >= 0")
    if start_date and end_date and end_date < start_date:
        raise ValidationFailed("end_date must be on or after start_date")

    challenge = LeagueChallenge(
        league_id=league_id,
        challenge_id=template.id if template else None,
        name=name,
        description=payload.get("description") or (template.description if template else None),
        challenge_type=challenge_type,
        total_points=total_points,
        start_date=start_date,
        end_date=end_date,
        status=ChallengeStatus.DRAFT.value,
        created_by=user_id,
    )
    session.add(challenge)
    await session.flush()
    await session.commit()
    await session.refresh(challenge)
    logger.info(f"User {user_id} added challenge {challenge.id} ({challenge_type}) to league {league_id}")
    return _challenge_to_dict(challenge, date.today())


async def activate_league_challenge(
    session: AsyncSession,
    league_id: int,
    league_challenge_id: int,
    user_id: int,
    payment_reference: str,
) -> Dict:
    """
    Record the payment for a draft challenge and schedule it.

    Payment verification happens with the payment provider before this call.
    """
    await role_service.require_league_admin(session, user_id, league_id)
    challenge = await _get_league_challenge(session, league_id, league_challenge_id)
    if normalize_stored_status(challenge.status) != ChallengeStatus.DRAFT.value:
        raise InvalidTransition("Only draft challenges can be activated")
    if not payment_reference:
        raise ValidationFailed("payment_reference is required")
    if not (challenge.start_date and challenge.end_date):
        raise ValidationFailed("Challenge needs start and end dates before activation")

    pricing = await pricing_service.get_pricing(session)
    challenge.pricing_id = pricing["id"] if pricing else None
    challenge.payment_reference = payment_reference
    challenge.status = ChallengeStatus.SCHEDULED.value
    await session.commit()
    await session.refresh(challenge)
    logger.info(f"Challenge {challenge.id} activated with payment {payment_reference}")
    return _challenge_to_dict(challenge, date.today())


async def list_league_challenges(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    today: Optional[date] = None,
) -> List[Dict]:
    """Challenges of a league with their effective status. Drafts are hidden from non-admins."""
    today = today or date.today()
    roles = await role_service.get_user_roles(session, user_id, league_id)
    result = await session.execute(
        select(LeagueChallenge)
        .where(LeagueChallenge.league_id == league_id)
        .order_by(LeagueChallenge.start_date, LeagueChallenge.id)
    )
    challenges = [_challenge_to_dict(c, today) for c in result.scalars().all()]
    if not role_service.is_league_admin(roles):
        challenges = [c for c in challenges if c["effective_status"] != ChallengeStatus.DRAFT.value]
    return challenges


# ============================================================================
# Submissions and review
# ============================================================================

async def submit_challenge_proof(
    session: AsyncSession,
    league_id: int,
    league_challenge_id: int,
    user_id: int,
    proof_url: str,
    today: Optional[date] = None,
) -> Dict:
    """
    Submit (or resubmit after rejection) proof for a challenge.

    Submissions are accepted while the challenge is active. A member whose
    submission was rejected may resubmit after the window closes, until the
    results are published.
    """
    today = today or date.today()
    member = await role_service.require_member(session, league_id, user_id)
    challenge = await _get_league_challenge(session, league_id, league_challenge_id)
    if not proof_url:
        raise ValidationFailed("proof_url is required")

    existing = (
        await session.execute(
            select(ChallengeSubmission).where(
                ChallengeSubmission.league_challenge_id == challenge.id,
                ChallengeSubmission.league_member_id == member.id,
            )
        )
    ).scalar_one_or_none()

    status = effective_status(challenge.status, challenge.start_date, challenge.end_date, today)
    is_resubmission = existing is not None and existing.status == SubmissionStatus.REJECTED.value
    if status != ChallengeStatus.ACTIVE.value:
        if not (status == ChallengeStatus.SUBMISSION_CLOSED.value and is_resubmission):
            raise InvalidTransition("Challenge is not accepting submissions")
    if existing is not None and not is_resubmission:
        raise InvalidTransition(f"You already have a {existing.status} submission for this challenge")

    team_id = None
    if challenge.challenge_type in (ChallengeType.TEAM.value, ChallengeType.SUB_TEAM.value):
        if member.team_id is None:
            raise ValidationFailed("You must be on a team to submit for this challenge")
        team_id = member.team_id

    if existing is None:
        submission = ChallengeSubmission(
            league_challenge_id=challenge.id,
            league_member_id=member.id,
            team_id=team_id,
            proof_url=proof_url,
            status=SubmissionStatus.PENDING.value,
        )
        session.add(submission)
    else:
        submission = existing
        submission.proof_url = proof_url
        submission.status = SubmissionStatus.PENDING.value
        submission.awarded_points = None
        submission.reviewed_by = None
        submission.reviewed_at = None
        submission.team_id = team_id
    await session.flush()
    await session.commit()
    await session.refresh(submission)
    logger.info(
        f"Member {member.id} {'resubmitted' if is_resubmission else 'submitted'} proof for challenge {challenge.id}"
    )
    return _submission_to_dict(submission)


async def list_challenge_submissions(
    session: AsyncSession,
    league_id: int,
    league_challenge_id: int,
    user_id: int,
) -> List[Dict]:
    """All submissions of a challenge, for hosts and governors."""
    await role_service.require_league_admin(session, user_id, league_id)
    await _get_league_challenge(session, league_id, league_challenge_id)
    result = await session.execute(
        select(ChallengeSubmission, User.username, Team.name)
        .join(LeagueMember, LeagueMember.id == ChallengeSubmission.league_member_id)
        .join(User, User.id == LeagueMember.user_id)
        .outerjoin(Team, Team.id == LeagueMember.team_id)
        .where(ChallengeSubmission.league_challenge_id == league_challenge_id)
        .order_by(ChallengeSubmission.created_at, ChallengeSubmission.id)
    )
    return [
        {**_submission_to_dict(submission), "username": username, "team_name": team_name}
        for submission, username, team_name in result.all()
    ]


async def review_challenge_submission(
    session: AsyncSession,
    submission_id: int,
    user_id: int,
    status: str,
    awarded_points: Optional[float] = None,
    today: Optional[date] = None,
) -> Dict:
    """
    Approve or reject a challenge submission and recompute the challenge scores.

    Reviews are allowed only once submissions have closed or results are
    published. Approved points default to the challenge total for every
    challenge type; explicit points are checked against the total and, for
    team challenges, the per-member cap.

    Raises:
        NotFound: submission missing
        Forbidden: reviewer is not host or governor
        InvalidTransition: challenge is not in a reviewable state
        ValidationFailed, PointsExceedLimit: bad points
    """
    today = today or date.today()
    if status not in (SubmissionStatus.APPROVED.value, SubmissionStatus.REJECTED.value):
        raise ValidationFailed("status must be approved or rejected")

    row = (
        await session.execute(
            select(ChallengeSubmission, LeagueChallenge, LeagueMember)
            .join(LeagueChallenge, LeagueChallenge.id == ChallengeSubmission.league_challenge_id)
            .join(LeagueMember, LeagueMember.id == ChallengeSubmission.league_member_id)
            .where(ChallengeSubmission.id == submission_id)
        )
    ).first()
    if row is None:
        raise NotFound("Submission not found")
    submission, challenge, member = row
    league_id = challenge.league_id

    await role_service.require_league_admin(session, user_id, league_id)

    current = effective_status(challenge.status, challenge.start_date, challenge.end_date, today)
    if current not in REVIEWABLE_STATUSES:
        logger.warning(
            f"Review of submission {submission_id} refused: challenge {challenge.id} is {current}"
        )
        raise InvalidTransition(
            "Reviews are allowed only after submissions close or after scores are published.",
            {"effective_status": current},
        )

    async with reserve_commit(session):
        if status == SubmissionStatus.APPROVED.value:
            if awarded_points is not None:
                team_sizes, _ = await get_team_sizes(session, league_id)
                team_id = submission.team_id or member.team_id
                team_size = team_sizes.get(team_id, 1) if team_id else 1
                points = point_distribution_service.validate_awarded_points(
                    awarded_points, challenge.challenge_type, challenge.total_points, team_size
                )
            else:
                points = float(challenge.total_points or 0)
            submission.awarded_points = points
            if challenge.challenge_type == ChallengeType.TEAM.value and submission.team_id is None:
                submission.team_id = member.team_id
        else:
            submission.awarded_points = None

        submission.status = status
        submission.reviewed_by = user_id
        submission.reviewed_at = utcnow()
        await session.flush()
        await sync_challenge_scores(session, challenge)

    await session.refresh(submission)
    logger.info(
        f"Challenge submission {submission_id} {status} by user {user_id} "
        f"(points={submission.awarded_points})"
    )
    return _submission_to_dict(submission)


# ============================================================================
# Score aggregation
# ============================================================================

def aggregate_team_scores(rows: List[Tuple[int, Optional[int], Optional[float]]]) -> Dict[int, float]:
    """Sum positive awarded points per team. Rows: (member_id, team_id, points)."""
    totals: Dict[int, float] = {}
    for _, team_id, points in rows:
        points = float(points or 0)
        if team_id is None or points <= 0:
            continue
        totals[team_id] = totals.get(team_id, 0) + points
    return totals


def aggregate_individual_scores(
    rows: List[Tuple[int, Optional[int], Optional[float]]],
    challenge_type: str,
    team_sizes: Dict[int, int],
    max_team_size: int,
) -> Dict[int, float]:
    """
    Sum positive awarded points per member.

    For team challenges each submission is rescaled by its team's size
    relative to the largest team, so that members of small teams (who have a
    larger per-member cap) do not outrank everyone else on the individual board.
    """
    totals: Dict[int, float] = {}
    for member_id, team_id, points in rows:
        points = float(points or 0)
        if points <= 0:
            continue
        if challenge_type == ChallengeType.TEAM.value:
            my_size = team_sizes.get(team_id, 1) if team_id else 1
            points = point_distribution_service.round_half_up(points * my_size / max(1, max_team_size))
        totals[member_id] = totals.get(member_id, 0) + points
    return totals


async def sync_challenge_scores(session: AsyncSession, challenge: LeagueChallenge) -> Dict:
    """
    Rewrite the team and individual score rows of a challenge from its
    approved submissions. Does not commit.

    Team scores are kept for every challenge type. Individual scores are kept
    for individual and team challenges.
    """
    result = await session.execute(
        select(
            ChallengeSubmission.league_member_id,
            func.coalesce(ChallengeSubmission.team_id, LeagueMember.team_id),
            ChallengeSubmission.awarded_points,
        )
        .join(LeagueMember, LeagueMember.id == ChallengeSubmission.league_member_id)
        .where(
            ChallengeSubmission.league_challenge_id == challenge.id,
            ChallengeSubmission.status == SubmissionStatus.APPROVED.value,
        )
    )
    rows = [tuple(r) for r in result.all()]

    team_totals = aggregate_team_scores(rows)
    individual_totals: Dict[int, float] = {}
    if challenge.challenge_type in (ChallengeType.INDIVIDUAL.value, ChallengeType.TEAM.value):
        team_sizes, max_size = await get_team_sizes(session, challenge.league_id)
        individual_totals = aggregate_individual_scores(
            rows, challenge.challenge_type, team_sizes, max_size
        )

    await session.execute(
        delete(ChallengeTeamScore).where(ChallengeTeamScore.league_challenge_id == challenge.id)
    )
    await session.execute(
        delete(ChallengeIndividualScore).where(
            ChallengeIndividualScore.league_challenge_id == challenge.id
        )
    )
    for team_id, score in team_totals.items():
        session.add(
            ChallengeTeamScore(
                league_challenge_id=challenge.id,
                league_id=challenge.league_id,
                team_id=team_id,
                score=score,
            )
        )
    for member_id, score in individual_totals.items():
        session.add(
            ChallengeIndividualScore(
                league_challenge_id=challenge.id,
                league_id=challenge.league_id,
                league_member_id=member_id,
                score=score,
            )
        )
    await session.flush()
    logger.info(
        f"Synced scores for challenge {challenge.id}: {len(team_totals)} teams, "
        f"{len(individual_totals)} members"
    )
    return {"teams": team_totals, "individuals": individual_totals}


# ============================================================================
# Publishing
# ============================================================================

async def publish_challenge(
    session: AsyncSession,
    league_id: int,
    league_challenge_id: int,
    user_id: int,
    today: Optional[date] = None,
) -> Dict:
    """Publish results once submissions have closed and nothing is pending."""
    today = today or date.today()
    await role_service.require_league_admin(session, user_id, league_id)
    challenge = await _get_league_challenge(session, league_id, league_challenge_id)

    current = effective_status(challenge.status, challenge.start_date, challenge.end_date, today)
    if current == ChallengeStatus.PUBLISHED.value:
        raise InvalidTransition("Challenge scores are already published")
    if current != ChallengeStatus.SUBMISSION_CLOSED.value:
        raise InvalidTransition("Publishing is allowed only after submissions have closed")

    pending = (
        await session.execute(
            select(func.count(ChallengeSubmission.id)).where(
                ChallengeSubmission.league_challenge_id == challenge.id,
                ChallengeSubmission.status == SubmissionStatus.PENDING.value,
            )
        )
    ).scalar() or 0
    if pending:
        raise InvalidTransition(
            "Review all pending submissions before publishing", {"pending": pending}
        )

    async with reserve_commit(session):
        challenge.status = ChallengeStatus.PUBLISHED.value
        await session.flush()
        await sync_challenge_scores(session, challenge)

    logger.info(f"Challenge {challenge.id} published by user {user_id}")
    return _challenge_to_dict(challenge, today)


async def close_challenge(
    session: AsyncSession,
    league_id: int,
    league_challenge_id: int,
    user_id: int,
    today: Optional[date] = None,
) -> Dict:
    """Close a published challenge. Afterwards it reads from its date window again."""
    today = today or date.today()
    await role_service.require_league_admin(session, user_id, league_id)
    challenge = await _get_league_challenge(session, league_id, league_challenge_id)
    if normalize_stored_status(challenge.status) != ChallengeStatus.PUBLISHED.value:
        raise InvalidTransition("Only published challenges can be closed")
    challenge.status = ChallengeStatus.CLOSED.value
    await session.commit()
    logger.info(f"Challenge {challenge.id} closed by user {user_id}")
    return _challenge_to_dict(challenge, today)


# ============================================================================
# Read models
# ============================================================================

async def get_challenge_leaderboard(
    session: AsyncSession,
    league_id: int,
    league_challenge_id: int,
    user_id: int,
) -> Dict:
    """Ranked team and individual scores for one challenge."""
    await role_service.require_member(session, league_id, user_id)
    challenge = await _get_league_challenge(session, league_id, league_challenge_id)

    team_result = await session.execute(
        select(ChallengeTeamScore.team_id, Team.name, ChallengeTeamScore.score)
        .join(Team, Team.id == ChallengeTeamScore.team_id)
        .where(ChallengeTeamScore.league_challenge_id == challenge.id)
        .order_by(ChallengeTeamScore.score.desc(), Team.name)
    )
    teams = point_distribution_service.rank_by(
        [{"team_id": t, "team_name": n, "score": s} for t, n, s in team_result.all()], "score"
    )

    individual_result = await session.execute(
        select(ChallengeIndividualScore.league_member_id, User.username, ChallengeIndividualScore.score)
        .join(LeagueMember, LeagueMember.id == ChallengeIndividualScore.league_member_id)
        .join(User, User.id == LeagueMember.user_id)
        .where(ChallengeIndividualScore.league_challenge_id == challenge.id)
        .order_by(ChallengeIndividualScore.score.desc(), User.username)
    )
    individuals = point_distribution_service.rank_by(
        [{"league_member_id": m, "username": u, "score": s} for m, u, s in individual_result.all()],
        "score",
    )
    return {"challenge": _challenge_to_dict(challenge, date.today()), "teams": teams, "individuals": individuals}


async def get_point_distribution(
    session: AsyncSession,
    league_id: int,
    league_challenge_id: int,
    user_id: int,
    team_id: Optional[int] = None,
) -> Dict:
    """Per-member cap for a team (the caller's own team by default)."""
    member = await role_service.require_member(session, league_id, user_id)
    challenge = await _get_league_challenge(session, league_id, league_challenge_id)
    team_id = team_id or member.team_id
    if team_id is not None and team_id != member.team_id:
        roles = await role_service.get_user_roles(session, user_id, league_id)
        if not role_service.is_league_admin(roles):
            raise Forbidden("Only the host or a governor can view other teams' distribution")
    team_sizes, _ = await get_team_sizes(session, league_id)
    team_size = team_sizes.get(team_id, 0) if team_id else 0
    info = point_distribution_service.get_point_distribution(
        challenge.challenge_type, challenge.total_points, team_size
    )
    info["team_id"] = team_id
    return info
