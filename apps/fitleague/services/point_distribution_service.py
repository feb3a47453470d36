"""
Challenge point distribution and team-size normalization.

Two related concerns:
- the per-member cap for a challenge submission, so a team's total stays fair
  regardless of how many members submit;
- rescaling team totals to the largest team's size so that bigger teams do not
  win purely through head count.

Rounding is half-up (0.5 rounds away from zero for positive values) to match
what members see in the app.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Optional

from fitleague.database.models import ChallengeType
from fitleague.utils.errors import PointsExceedLimit, ValidationFailed


def round_half_up(value: float, places: int = 0) -> float:
    """Round like a person would: 2.5 -> 3, 0.125 -> 0.13 at two places."""
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded) if places else float(int(rounded))


def max_points_per_member(
    challenge_type: str, total_points: Optional[float], team_size: int
) -> float:
    """
    Highest number of points one member's submission can earn.

    Team challenges split the pool evenly (two decimals). Individual and
    sub_team challenges cap at the full pool.
    """
    total = float(total_points or 0)
    if challenge_type != ChallengeType.TEAM.value:
        return total
    if team_size <= 0 or total <= 0:
        return 0.0
    return round_half_up(total / team_size, 2)


def validate_awarded_points(
    awarded_points: float,
    challenge_type: str,
    total_points: Optional[float],
    team_size: int,
) -> float:
    """
    Check a reviewer's awarded points against the challenge pool and cap.

    Returns:
        The points, as a float

    Raises:
        ValidationFailed: negative, non-finite, or above the challenge total
        PointsExceedLimit: above the per-member cap of a team challenge
    """
    try:
        points = float(awarded_points)
    except (TypeError, ValueError):
        raise ValidationFailed("Awarded points must be a number")
    if points != points or points in (float("inf"), float("-inf")):
        raise ValidationFailed("Awarded points must be a finite number")
    if points < 0:
        raise ValidationFailed("Awarded points cannot be negative")

    total = float(total_points or 0)
    if challenge_type == ChallengeType.TEAM.value:
        cap = max_points_per_member(challenge_type, total, team_size)
        if points > cap:
            raise PointsExceedLimit(cap)
    elif total_points is not None and points > total:
        raise PointsExceedLimit(total, f"Points cannot exceed challenge total of {total}")
    return points


def get_point_distribution(
    challenge_type: str, total_points: Optional[float], team_size: int
) -> Dict:
    """Distribution summary for hosts configuring or reviewing a challenge."""
    cap = max_points_per_member(challenge_type, total_points, team_size)
    if challenge_type != ChallengeType.TEAM.value:
        description = f"Each member can earn up to {cap} points."
    else:
        description = (
            f"Points will be fairly distributed among {team_size} members. "
            f"Each can contribute up to {cap} points."
        )
    return {
        "challenge_type": challenge_type,
        "total_points": float(total_points or 0),
        "team_size": team_size,
        "max_points_per_member": cap,
        "description": description,
    }


def team_size_stats(sizes: Iterable[int]) -> Dict:
    sizes = list(sizes)
    if not sizes:
        return {"min_size": 0, "max_size": 0, "avg_size": 0.0, "has_variance": False}
    return {
        "min_size": min(sizes),
        "max_size": max(sizes),
        "avg_size": sum(sizes) / len(sizes),
        "has_variance": min(sizes) != max(sizes),
    }


def scale_points(points: float, team_size: int, max_team_size: int) -> float:
    """Rescale ``points`` from ``team_size`` to ``max_team_size`` members, whole numbers."""
    if team_size <= 0 or max_team_size <= 0:
        return round_half_up(points)
    return round_half_up(points * max_team_size / team_size)


def normalize_team_totals(
    teams: List[Dict],
    points_key: str = "points",
    size_key: str = "member_count",
    bonus_key: Optional[str] = "challenge_bonus",
    tie_breaker: Optional[Callable[[Dict], object]] = None,
) -> List[Dict]:
    """
    Rescale each team's raw points to the largest team size and re-rank.

    Only applied when team sizes actually differ; otherwise the teams are
    returned unchanged. Each returned team gets ``normalized_points`` and a
    recomputed ``total_points`` (normalized points plus any bonus) and
    ``rank``.

    Ties on the normalized total keep their incoming order unless a
    ``tie_breaker`` key function is given, in which case it orders them
    ascending.

    Args:
        teams: Dicts with at least the points and size keys
        points_key: Key holding raw points
        size_key: Key holding member count
        bonus_key: Key holding points added after rescaling (None to skip)
        tie_breaker: Optional key function for teams with equal totals

    Returns:
        New list of team dicts
    """
    stats = team_size_stats(t.get(size_key) or 0 for t in teams)
    if not stats["has_variance"] or stats["max_size"] <= 0:
        return [dict(t) for t in teams]

    max_size = stats["max_size"]
    normalized = []
    for team in teams:
        size = max(1, team.get(size_key) or 0)
        base = scale_points(team.get(points_key) or 0, size, max_size)
        bonus = (team.get(bonus_key) or 0) if bonus_key else 0
        normalized.append({**team, "normalized_points": base, "total_points": base + bonus})

    return rank_by(normalized, "total_points", tie_breaker)


def normalize_points_by_date(
    teams: List[Dict],
    sizes: Dict,
    max_team_size: int,
) -> List[Dict]:
    """Rescale each team's ``points_by_date`` map in place of the raw counts."""
    result = []
    for team in teams:
        size = max(1, sizes.get(team["team_id"], 0))
        scaled = {
            day: scale_points(value or 0, size, max_team_size)
            for day, value in (team.get("points_by_date") or {}).items()
        }
        result.append({**team, "points_by_date": scaled})
    return result


def rank_by(
    rows: List[Dict],
    key: str,
    tie_breaker: Optional[Callable[[Dict], object]] = None,
) -> List[Dict]:
    """
    Sort rows by ``key`` descending and assign 1-based ranks.

    Python's sort is stable, so equal rows keep their incoming order when no
    tie breaker is given.
    """
    if tie_breaker is not None:
        rows = sorted(rows, key=tie_breaker)
    ordered = sorted(rows, key=lambda r: r.get(key) or 0, reverse=True)
    return [{**row, "rank": index + 1} for index, row in enumerate(ordered)]
