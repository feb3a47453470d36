"""
Tests for league leaderboard aggregation.
"""
import pytest
from datetime import date

from fitleague.database.models import ChallengeIndividualScore, ChallengeTeamScore
from fitleague.services import leaderboard_service, point_distribution_service
from fitleague.utils.errors import NotMember, ValidationFailed
from conftest import make_challenge, make_entry, make_member, make_team, make_user

TODAY = date(2025, 6, 10)


def test_average_rr_ignores_non_positive():
    assert leaderboard_service.average_rr([1.2, 0, None, 1.6]) == 1.4
    assert leaderboard_service.average_rr([]) == 0.0


def test_sort_by_points_then_rr():
    rows = [
        {"name": "a", "total_points": 3, "avg_rr": 1.1},
        {"name": "b", "total_points": 3, "avg_rr": 1.5},
        {"name": "c", "total_points": 5, "avg_rr": 1.0},
    ]
    ranked = leaderboard_service.sort_by_points_then_rr(rows)
    assert [(r["name"], r["rank"]) for r in ranked] == [("c", 1), ("b", 2), ("a", 3)]


class TestResolveDateRange:

    def test_defaults(self):
        result = leaderboard_service.resolve_date_range(None, None, date(2025, 6, 1), TODAY)
        assert result == {"start": date(2025, 6, 1), "end": TODAY}

    def test_explicit(self):
        result = leaderboard_service.resolve_date_range("2025-06-03", "2025-06-05", date(2025, 6, 1), TODAY)
        assert result == {"start": date(2025, 6, 3), "end": date(2025, 6, 5)}

    def test_inverted_range(self):
        with pytest.raises(ValidationFailed):
            leaderboard_service.resolve_date_range("2025-06-05", "2025-06-03", date(2025, 6, 1), TODAY)

    def test_bad_format(self):
        with pytest.raises(ValidationFailed):
            leaderboard_service.resolve_date_range("06/05/2025", None, date(2025, 6, 1), TODAY)


async def seed_entries(s):
    session, m = s["session"], s["members"]
    await make_entry(session, m["player_a1"], date(2025, 6, 2), status="approved", rr_value=1.2)
    await make_entry(session, m["player_a1"], date(2025, 6, 3), status="approved", rr_value=1.6)
    await make_entry(session, m["player_b1"], date(2025, 6, 2), status="approved", rr_value=1.0)
    await make_entry(session, m["player_b1"], date(2025, 6, 3), status="approved", rr_value=1.0)
    await make_entry(session, m["player_b1"], date(2025, 6, 4), status="approved", rr_value=1.4)
    await make_entry(session, m["player_a2"], date(2025, 6, 2), status="pending")
    await make_entry(session, m["player_a2"], date(2025, 6, 3), status="rejected_resubmit")
    await session.commit()


@pytest.mark.asyncio
async def test_points_rr_and_stats(league_setup):
    s = league_setup
    await seed_entries(s)

    board = await leaderboard_service.get_league_leaderboard(
        s["session"], s["league_id"], s["user_ids"]["player_a1"], today=TODAY
    )
    assert board["dateRange"] == {"startDate": "2025-06-01", "endDate": "2025-06-10"}
    assert board["normalized"] is False

    beta, alpha = board["teams"]
    assert (beta["team_name"], beta["points"], beta["avg_rr"], beta["rank"]) == ("Beta", 3, 1.13, 1)
    assert (alpha["team_name"], alpha["points"], alpha["avg_rr"], alpha["rank"]) == ("Alpha", 2, 1.4, 2)
    assert alpha["member_count"] == 3

    assert [(i["username"], i["points"]) for i in board["individuals"]] == [("player_b1", 3), ("player_a1", 2)]
    assert board["stats"] == {
        "total_submissions": 7,
        "approved": 5,
        "pending": 1,
        "rejected": 1,
        "total_rr": 6.2,
    }


@pytest.mark.asyncio
async def test_date_range_filters_entries(league_setup):
    s = league_setup
    await seed_entries(s)
    board = await leaderboard_service.get_league_leaderboard(
        s["session"], s["league_id"], s["user_ids"]["host"],
        start_date="2025-06-04", end_date="2025-06-04", today=TODAY,
    )
    points = {t["team_name"]: t["points"] for t in board["teams"]}
    assert points == {"Alpha": 0, "Beta": 1}
    assert board["stats"]["total_submissions"] == 1


@pytest.mark.asyncio
async def test_challenge_bonus_counts_when_challenge_ends_in_range(league_setup):
    s = league_setup
    session = s["session"]
    await seed_entries(s)
    challenge = await make_challenge(session, s["league"], end_date=date(2025, 6, 7))
    session.add(ChallengeTeamScore(
        league_challenge_id=challenge.id, league_id=s["league_id"], team_id=s["team_ids"]["alpha"], score=10,
    ))
    session.add(ChallengeIndividualScore(
        league_challenge_id=challenge.id, league_id=s["league_id"],
        league_member_id=s["member_ids"]["player_a1"], score=4,
    ))
    await session.commit()

    board = await leaderboard_service.get_league_leaderboard(
        session, s["league_id"], s["user_ids"]["host"], today=TODAY
    )
    alpha = board["teams"][0]
    assert (alpha["team_name"], alpha["challenge_bonus"], alpha["total_points"]) == ("Alpha", 10, 12)
    a1 = board["individuals"][0]
    assert (a1["username"], a1["challenge_points"], a1["total_points"]) == ("player_a1", 4, 6)

    later = await leaderboard_service.get_league_leaderboard(
        session, s["league_id"], s["user_ids"]["host"], start_date="2025-06-08", today=TODAY
    )
    assert all(t["challenge_bonus"] == 0 for t in later["teams"])


@pytest.mark.asyncio
async def test_normalization_rescales_to_largest_team(league_setup):
    s = league_setup
    session, m = s["session"], s["members"]
    s["league"].normalize_points_by_team_size = True
    for day in (2, 3, 4, 5):
        await make_entry(session, m["player_a1"], date(2025, 6, day), status="approved")
    for day in (2, 3):
        await make_entry(session, m["player_b1"], date(2025, 6, day), status="approved")
    await session.commit()

    board = await leaderboard_service.get_league_leaderboard(
        session, s["league_id"], s["user_ids"]["host"], today=TODAY
    )
    assert board["normalized"] is True
    # Beta (1 member) scaled to Alpha's 3 members: 2 -> 6
    assert [(t["team_name"], t["normalized_points"], t["rank"]) for t in board["teams"]] == [
        ("Beta", 6, 1),
        ("Alpha", 4, 2),
    ]


@pytest.mark.asyncio
async def test_pending_window_counts_pending_and_approved(league_setup):
    s = league_setup
    session, m = s["session"], s["members"]
    await make_entry(session, m["player_a1"], date(2025, 6, 9), status="approved")
    await make_entry(session, m["player_b1"], date(2025, 6, 10), status="pending")
    await make_entry(session, m["player_a2"], date(2025, 6, 10), status="rejected_resubmit")
    await session.commit()

    board = await leaderboard_service.get_league_leaderboard(
        session, s["league_id"], s["user_ids"]["host"], today=TODAY
    )
    window = board["pending_window"]
    assert window["dates"] == ["2025-06-09", "2025-06-10"]
    first, second = window["teams"]
    assert first["team_name"] == "Beta"
    assert first["points_by_date"] == {"2025-06-09": 0, "2025-06-10": 1}
    assert second["points_by_date"] == {"2025-06-09": 1, "2025-06-10": 0}


@pytest.mark.asyncio
async def test_empty_team_normalizes_both_views(league_setup, monkeypatch):
    s = league_setup
    session, league = s["session"], s["league"]
    league.normalize_points_by_team_size = True
    # Alpha and Beta both get 3 members; Gamma has none
    for name in ("player_b2", "player_b3"):
        await make_member(session, league, await make_user(session, name), s["teams"]["beta"], roles=("player",))
    await make_team(session, league, "Gamma")
    await make_entry(session, s["members"]["player_a1"], date(2025, 6, 10), status="pending")
    await session.commit()

    scaled_windows = []
    real_normalize = point_distribution_service.normalize_points_by_date

    def recording_normalize(rows, sizes, max_team_size):
        scaled_windows.append(max_team_size)
        return real_normalize(rows, sizes, max_team_size)

    monkeypatch.setattr(point_distribution_service, "normalize_points_by_date", recording_normalize)

    board = await leaderboard_service.get_league_leaderboard(
        session, s["league_id"], s["user_ids"]["host"], today=TODAY
    )
    assert board["normalized"] is True
    assert scaled_windows == [3]
    window = {t["team_name"]: t["points_by_date"]["2025-06-10"] for t in board["pending_window"]["teams"]}
    assert window == {"Alpha": 1, "Beta": 0, "Gamma": 0}


@pytest.mark.asyncio
async def test_non_member_cannot_view(league_setup):
    s = league_setup
    outsider = await make_user(s["session"], "outsider")
    with pytest.raises(NotMember):
        await leaderboard_service.get_league_leaderboard(
            s["session"], s["league_id"], outsider.id, today=TODAY
        )
