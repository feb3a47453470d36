"""
League leaderboard aggregation.

Every approved effort entry is worth one point. Team totals add the team's
challenge scores for challenges that ended inside the requested range, and
may be rescaled to the largest team's size when the league asks for it.
"""

import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitleague.database.models import (
    ChallengeIndividualScore,
    ChallengeTeamScore,
    EffortEntry,
    EntryStatus,
    LeagueChallenge,
    LeagueMember,
    Team,
    User,
)
from fitleague.services import point_distribution_service, role_service
from fitleague.services.challenge_service import get_team_sizes
from fitleague.services.point_distribution_service import round_half_up
from fitleague.utils.constants import INDIVIDUAL_LEADERBOARD_LIMIT, POINTS_PER_APPROVED_ENTRY
from fitleague.utils.datetime_utils import format_ymd, parse_ymd
from fitleague.utils.errors import ValidationFailed

logger = logging.getLogger(__name__)

REJECTED_STATUSES = (EntryStatus.REJECTED_RESUBMIT.value, EntryStatus.REJECTED_PERMANENT.value)


def average_rr(values: List[float]) -> float:
    """Mean of positive RR values, two decimals; 0 when there are none."""
    positive = [v for v in values if v and v > 0]
    if not positive:
        return 0.0
    return round_half_up(sum(positive) / len(positive), 2)


def sort_by_points_then_rr(rows: List[Dict], points_key: str = "total_points") -> List[Dict]:
    ordered = sorted(rows, key=lambda r: (-(r.get(points_key) or 0), -(r.get("avg_rr") or 0)))
    return [{**row, "rank": index + 1} for index, row in enumerate(ordered)]


def resolve_date_range(
    start_date, end_date, league_start: date, today: date
) -> Dict[str, date]:
    start = parse_ymd(start_date) if start_date else league_start
    end = parse_ymd(end_date) if end_date else today
    if start is None or end is None:
        raise ValidationFailed("Dates must be YYYY-MM-DD")
    if end < start:
        raise ValidationFailed("endDate must be on or after startDate")
    return {"start": start, "end": end}


async def _team_rows(session: AsyncSession, league_id: int) -> List[Dict]:
    result = await session.execute(
        select(Team.id, Team.name).where(Team.league_id == league_id).order_by(Team.name)
    )
    return [{"team_id": team_id, "team_name": name} for team_id, name in result.all()]


async def _pending_window(
    session: AsyncSession,
    league_id: int,
    teams: List[Dict],
    team_sizes: Dict[int, int],
    max_team_size: int,
    normalize: bool,
    today: date,
) -> Dict:
    """
    Points per team for yesterday and today counting entries still awaiting
    review as well as approved ones, ranked by today's points. Scaled by
    team size exactly when the main board is (``normalize``).
    """
    yesterday = today - timedelta(days=1)
    result = await session.execute(
        select(LeagueMember.team_id, EffortEntry.date)
        .join(LeagueMember, LeagueMember.id == EffortEntry.league_member_id)
        .where(
            LeagueMember.league_id == league_id,
            EffortEntry.date.in_([yesterday, today]),
            EffortEntry.status.in_([EntryStatus.PENDING.value, EntryStatus.APPROVED.value]),
        )
    )
    days = [format_ymd(yesterday), format_ymd(today)]
    by_team = {t["team_id"]: {day: 0 for day in days} for t in teams}
    for team_id, day in result.all():
        if team_id in by_team:
            by_team[team_id][format_ymd(day)] += POINTS_PER_APPROVED_ENTRY

    rows = [{**t, "points_by_date": by_team[t["team_id"]]} for t in teams]
    if normalize:
        rows = point_distribution_service.normalize_points_by_date(rows, team_sizes, max_team_size)

    today_key = format_ymd(today)
    ranked = sorted(rows, key=lambda r: -(r["points_by_date"].get(today_key) or 0))
    return {
        "dates": days,
        "teams": [{**row, "rank": index + 1} for index, row in enumerate(ranked)],
    }


async def get_league_leaderboard(
    session: AsyncSession,
    league_id: int,
    user_id: int,
    start_date=None,
    end_date=None,
    today: Optional[date] = None,
    tie_breaker: Optional[Callable[[Dict], object]] = None,
) -> Dict:
    """
    Team and individual standings for a league over a date range.

    Args:
        start_date: First day counted (defaults to the league start)
        end_date: Last day counted (defaults to today)
        today: Reference day, injectable for tests
        tie_breaker: Optional key ordering teams with equal normalized totals

    Returns:
        Dict with league, dateRange, teams, individuals, stats and pending_window
    """
    today = today or date.today()
    league = await role_service.get_league(session, league_id)
    await role_service.require_member(session, league_id, user_id)
    date_range = resolve_date_range(start_date, end_date, league.start_date, today)
    start, end = date_range["start"], date_range["end"]

    teams = await _team_rows(session, league_id)
    team_sizes, max_team_size = await get_team_sizes(session, league_id)

    entry_result = await session.execute(
        select(
            EffortEntry.status,
            EffortEntry.rr_value,
            LeagueMember.id,
            LeagueMember.team_id,
            User.username,
        )
        .join(LeagueMember, LeagueMember.id == EffortEntry.league_member_id)
        .join(User, User.id == LeagueMember.user_id)
        .where(
            LeagueMember.league_id == league_id,
            EffortEntry.date >= start,
            EffortEntry.date <= end,
        )
    )

    stats = {"total_submissions": 0, "approved": 0, "pending": 0, "rejected": 0, "total_rr": 0.0}
    team_points: Dict[int, int] = {}
    team_rr: Dict[int, List[float]] = {}
    members: Dict[int, Dict] = {}
    for status, rr_value, member_id, team_id, username in entry_result.all():
        stats["total_submissions"] += 1
        if status == EntryStatus.PENDING.value:
            stats["pending"] += 1
        elif status in REJECTED_STATUSES:
            stats["rejected"] += 1
        if status != EntryStatus.APPROVED.value:
            continue
        stats["approved"] += 1
        stats["total_rr"] += rr_value or 0
        member = members.setdefault(
            member_id,
            {"league_member_id": member_id, "username": username, "team_id": team_id, "points": 0, "rr": []},
        )
        member["points"] += POINTS_PER_APPROVED_ENTRY
        member["rr"].append(rr_value or 0)
        if team_id is not None:
            team_points[team_id] = team_points.get(team_id, 0) + POINTS_PER_APPROVED_ENTRY
            team_rr.setdefault(team_id, []).append(rr_value or 0)
    stats["total_rr"] = round_half_up(stats["total_rr"], 2)

    bonus_result = await session.execute(
        select(ChallengeTeamScore.team_id, ChallengeTeamScore.score)
        .join(LeagueChallenge, LeagueChallenge.id == ChallengeTeamScore.league_challenge_id)
        .where(
            ChallengeTeamScore.league_id == league_id,
            LeagueChallenge.end_date >= start,
            LeagueChallenge.end_date <= end,
        )
    )
    team_bonus: Dict[int, float] = {}
    for team_id, score in bonus_result.all():
        team_bonus[team_id] = team_bonus.get(team_id, 0) + (score or 0)

    individual_bonus_result = await session.execute(
        select(ChallengeIndividualScore.league_member_id, ChallengeIndividualScore.score)
        .join(LeagueChallenge, LeagueChallenge.id == ChallengeIndividualScore.league_challenge_id)
        .where(
            ChallengeIndividualScore.league_id == league_id,
            LeagueChallenge.end_date >= start,
            LeagueChallenge.end_date <= end,
        )
    )
    individual_bonus: Dict[int, float] = {}
    for member_id, score in individual_bonus_result.all():
        individual_bonus[member_id] = individual_bonus.get(member_id, 0) + (score or 0)

    team_names = {t["team_id"]: t["team_name"] for t in teams}
    team_rows = []
    for team in teams:
        team_id = team["team_id"]
        points = team_points.get(team_id, 0)
        bonus = team_bonus.get(team_id, 0)
        team_rows.append({
            **team,
            "member_count": team_sizes.get(team_id, 0),
            "points": points,
            "challenge_bonus": bonus,
            "total_points": points + bonus,
            "avg_rr": average_rr(team_rr.get(team_id, [])),
        })
    team_rows = sort_by_points_then_rr(team_rows)

    normalized = False
    if league.normalize_points_by_team_size:
        sizes = point_distribution_service.team_size_stats(team_sizes.get(t["team_id"], 0) for t in teams)
        if sizes["has_variance"]:
            team_rows = point_distribution_service.normalize_team_totals(
                team_rows, tie_breaker=tie_breaker
            )
            normalized = True

    individual_rows = []
    for member_id, member in members.items():
        bonus = individual_bonus.get(member_id, 0)
        individual_rows.append({
            "league_member_id": member_id,
            "username": member["username"],
            "team_id": member["team_id"],
            "team_name": team_names.get(member["team_id"]),
            "points": member["points"],
            "challenge_points": bonus,
            "total_points": member["points"] + bonus,
            "avg_rr": average_rr(member["rr"]),
        })
    individual_rows = sort_by_points_then_rr(individual_rows)[:INDIVIDUAL_LEADERBOARD_LIMIT]

    pending_window = await _pending_window(
        session,
        league_id,
        teams,
        team_sizes,
        max_team_size,
        normalized,
        today,
    )

    logger.debug(f"Leaderboard for league {league_id} {start}..{end}: {len(team_rows)} teams")
    return {
        "league": {
            "id": league.id,
            "name": league.name,
            "start_date": format_ymd(league.start_date),
            "end_date": format_ymd(league.end_date),
            "normalize_points_by_team_size": bool(league.normalize_points_by_team_size),
        },
        "dateRange": {"startDate": format_ymd(start), "endDate": format_ymd(end)},
        "normalized": normalized,
        "teams": team_rows,
        "individuals": individual_rows,
        "stats": stats,
        "pending_window": pending_window,
    }
