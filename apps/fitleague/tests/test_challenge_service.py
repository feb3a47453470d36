"""
Tests for league challenges: effective status, submissions, review,
score aggregation and publishing.
"""
import pytest
from datetime import date
from sqlalchemy import select

from fitleague.database.models import ChallengeIndividualScore, ChallengeTeamScore
from fitleague.services import challenge_service
from fitleague.services.challenge_service import effective_status
from fitleague.utils.errors import (
    Forbidden,
    InvalidTransition,
    NotFound,
    PointsExceedLimit,
    ValidationFailed,
)
from conftest import make_challenge

START = date(2025, 6, 1)
END = date(2025, 6, 7)
DURING = date(2025, 6, 5)
AFTER = date(2025, 6, 10)


class TestEffectiveStatus:
    """Tests for the derived challenge status."""

    @pytest.mark.parametrize("stored", ["draft", "published"])
    def test_sticky_statuses(self, stored):
        for today in (date(2025, 5, 1), DURING, AFTER):
            assert effective_status(stored, START, END, today) == stored

    @pytest.mark.parametrize(
        "today,expected",
        [
            (date(2025, 5, 31), "scheduled"),
            (START, "active"),
            (END, "active"),
            (date(2025, 6, 8), "submission_closed"),
        ],
    )
    def test_date_window(self, today, expected):
        assert effective_status("scheduled", START, END, today) == expected

    def test_stored_active_still_follows_dates(self):
        assert effective_status("active", START, END, AFTER) == "submission_closed"

    def test_stored_closed_follows_dates(self):
        assert effective_status("closed", START, END, AFTER) == "submission_closed"
        assert effective_status("closed", START, END, DURING) == "active"

    def test_legacy_upcoming(self):
        assert effective_status("upcoming", None, None, DURING) == "scheduled"

    def test_unknown_reads_as_draft(self):
        assert effective_status("archived", START, END, DURING) == "draft"
        assert effective_status(None, START, END, DURING) == "draft"

    def test_only_end_date(self):
        assert effective_status("active", None, END, AFTER) == "submission_closed"
        assert effective_status("active", None, END, DURING) == "active"


class TestAggregation:

    def test_team_scores_ignore_zero_points(self):
        rows = [(1, 10, 20.0), (2, 10, 0), (3, 11, 5.0), (4, None, 9.0)]
        assert challenge_service.aggregate_team_scores(rows) == {10: 20.0, 11: 5.0}

    def test_team_challenge_individual_scores_are_rescaled(self):
        rows = [(1, 10, 30.0), (2, 11, 90.0)]
        scores = challenge_service.aggregate_individual_scores(rows, "team", {10: 3, 11: 1}, 3)
        assert scores == {1: 30.0, 2: 30.0}

    def test_individual_challenge_scores_are_direct(self):
        rows = [(1, 10, 30.0), (2, 11, 90.0)]
        scores = challenge_service.aggregate_individual_scores(rows, "individual", {10: 3, 11: 1}, 3)
        assert scores == {1: 30.0, 2: 90.0}


# ============================================================================
# Database-backed
# ============================================================================

async def submit(s, challenge_id, who, today=DURING):
    return await challenge_service.submit_challenge_proof(
        s["session"], s["league_id"], challenge_id, s["user_ids"][who], f"https://proof/{who}.jpg", today=today
    )


async def review(s, submission_id, who="host", status="approved", points=None, today=AFTER):
    return await challenge_service.review_challenge_submission(
        s["session"], submission_id, s["user_ids"][who], status, awarded_points=points, today=today
    )


async def team_scores(session, challenge_id):
    result = await session.execute(
        select(ChallengeTeamScore.team_id, ChallengeTeamScore.score).where(
            ChallengeTeamScore.league_challenge_id == challenge_id
        )
    )
    return dict(result.all())


async def individual_scores(session, challenge_id):
    result = await session.execute(
        select(ChallengeIndividualScore.league_member_id, ChallengeIndividualScore.score).where(
            ChallengeIndividualScore.league_challenge_id == challenge_id
        )
    )
    return dict(result.all())


@pytest.mark.asyncio
async def test_review_while_active_is_invalid(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"], total_points=90)
    challenge_id = challenge.id
    sub = await submit(s, challenge_id, "player_a1")
    with pytest.raises(InvalidTransition):
        await review(s, sub["id"], today=DURING)


@pytest.mark.asyncio
async def test_team_challenge_default_points_and_scores(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"], total_points=90)
    challenge_id = challenge.id
    sub_a = await submit(s, challenge_id, "player_a1")
    sub_b = await submit(s, challenge_id, "player_b1")
    assert sub_a["team_id"] == s["team_ids"]["alpha"]

    approved_a = await review(s, sub_a["id"])
    approved_b = await review(s, sub_b["id"])
    # Without explicit points the full challenge total is awarded
    assert approved_a["awarded_points"] == 90.0
    assert approved_b["awarded_points"] == 90.0

    assert await team_scores(s["session"], challenge_id) == {
        s["team_ids"]["alpha"]: 90.0,
        s["team_ids"]["beta"]: 90.0,
    }
    # Individual scores rescaled by team size: Alpha has 3 members, Beta 1
    assert await individual_scores(s["session"], challenge_id) == {
        s["member_ids"]["player_a1"]: 90.0,
        s["member_ids"]["player_b1"]: 30.0,
    }


@pytest.mark.asyncio
async def test_points_above_team_cap(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"], total_points=90)
    sub = await submit(s, challenge.id, "player_a1")
    with pytest.raises(PointsExceedLimit) as exc_info:
        await review(s, sub["id"], points=30.01)
    assert exc_info.value.max_allowed == 30.0

    accepted = await review(s, sub["id"], points=30)
    assert accepted["awarded_points"] == 30.0


@pytest.mark.asyncio
async def test_rejection_clears_points_and_scores(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"], challenge_type="individual", total_points=50)
    challenge_id = challenge.id
    sub = await submit(s, challenge_id, "player_a1")
    await review(s, sub["id"], points=40)
    assert await individual_scores(s["session"], challenge_id) == {s["member_ids"]["player_a1"]: 40.0}

    rejected = await review(s, sub["id"], status="rejected")
    assert rejected["awarded_points"] is None
    assert await individual_scores(s["session"], challenge_id) == {}
    assert await team_scores(s["session"], challenge_id) == {}


@pytest.mark.asyncio
async def test_sub_team_challenge_keeps_team_scores_only(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"], challenge_type="sub_team", total_points=20)
    challenge_id = challenge.id
    sub = await submit(s, challenge_id, "player_a1")
    approved = await review(s, sub["id"])
    assert approved["awarded_points"] == 20.0
    assert await team_scores(s["session"], challenge_id) == {s["team_ids"]["alpha"]: 20.0}
    assert await individual_scores(s["session"], challenge_id) == {}


@pytest.mark.asyncio
async def test_only_admins_review(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"])
    sub = await submit(s, challenge.id, "player_a1")
    with pytest.raises(Forbidden):
        await review(s, sub["id"], who="captain_a")


@pytest.mark.asyncio
async def test_submission_rules(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"])
    challenge_id = challenge.id

    with pytest.raises(InvalidTransition):
        await submit(s, challenge_id, "player_a1", today=date(2025, 5, 20))

    await submit(s, challenge_id, "player_a1")
    with pytest.raises(InvalidTransition):
        await submit(s, challenge_id, "player_a1")

    # Host has no team
    with pytest.raises(ValidationFailed):
        await submit(s, challenge_id, "host")

    with pytest.raises(InvalidTransition):
        await submit(s, challenge_id, "player_a2", today=AFTER)


@pytest.mark.asyncio
async def test_resubmission_after_rejection_when_closed(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"])
    sub = await submit(s, challenge.id, "player_a1")
    await review(s, sub["id"], status="rejected")

    again = await submit(s, challenge.id, "player_a1", today=AFTER)
    assert again["id"] == sub["id"]
    assert again["status"] == "pending"
    assert again["proof_url"] == "https://proof/player_a1.jpg"
    assert again["reviewed_by"] is None


@pytest.mark.asyncio
async def test_publish_and_close(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"])
    challenge_id = challenge.id
    sub = await submit(s, challenge_id, "player_a1")

    with pytest.raises(InvalidTransition):
        await challenge_service.publish_challenge(
            s["session"], s["league_id"], challenge_id, s["user_ids"]["host"], today=DURING
        )
    with pytest.raises(InvalidTransition) as exc_info:
        await challenge_service.publish_challenge(
            s["session"], s["league_id"], challenge_id, s["user_ids"]["host"], today=AFTER
        )
    assert exc_info.value.extra["pending"] == 1

    await review(s, sub["id"])
    published = await challenge_service.publish_challenge(
        s["session"], s["league_id"], challenge_id, s["user_ids"]["governor"], today=AFTER
    )
    assert published["effective_status"] == "published"

    with pytest.raises(InvalidTransition):
        await challenge_service.publish_challenge(
            s["session"], s["league_id"], challenge_id, s["user_ids"]["host"], today=AFTER
        )

    # Reviews remain possible after publishing
    await review(s, sub["id"], points=10)
    assert await team_scores(s["session"], challenge_id) == {s["team_ids"]["alpha"]: 10.0}

    closed = await challenge_service.close_challenge(
        s["session"], s["league_id"], challenge_id, s["user_ids"]["host"], today=AFTER
    )
    assert closed["status"] == "closed"
    assert closed["effective_status"] == "submission_closed"

    # A closed challenge past its end date is still reviewable
    await review(s, sub["id"], points=5)
    assert await team_scores(s["session"], challenge_id) == {s["team_ids"]["alpha"]: 5.0}


@pytest.mark.asyncio
async def test_unknown_challenge_not_found(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"])
    with pytest.raises(NotFound):
        await challenge_service.publish_challenge(
            s["session"], s["league_id"], challenge.id + 100, s["user_ids"]["host"], today=AFTER
        )


@pytest.mark.asyncio
async def test_create_activate_and_list(league_setup):
    s = league_setup
    created = await challenge_service.create_league_challenge(
        s["session"],
        s["league_id"],
        s["user_ids"]["host"],
        {"name": "Step Sprint", "challenge_type": "team", "total_points": 60,
         "start_date": "2025-06-10", "end_date": "2025-06-12"},
    )
    assert created["status"] == "draft"

    hidden = await challenge_service.list_league_challenges(
        s["session"], s["league_id"], s["user_ids"]["player_a1"], today=DURING
    )
    assert hidden == []

    activated = await challenge_service.activate_league_challenge(
        s["session"], s["league_id"], created["id"], s["user_ids"]["host"], "pay_123"
    )
    assert activated["status"] == "scheduled"
    assert activated["payment_reference"] == "pay_123"

    visible = await challenge_service.list_league_challenges(
        s["session"], s["league_id"], s["user_ids"]["player_a1"], today=date(2025, 6, 11)
    )
    assert [c["effective_status"] for c in visible] == ["active"]

    with pytest.raises(InvalidTransition):
        await challenge_service.activate_league_challenge(
            s["session"], s["league_id"], created["id"], s["user_ids"]["host"], "pay_456"
        )


@pytest.mark.asyncio
async def test_create_challenge_requires_admin(league_setup):
    s = league_setup
    with pytest.raises(Forbidden):
        await challenge_service.create_league_challenge(
            s["session"], s["league_id"], s["user_ids"]["captain_a"], {"name": "Nope"}
        )


@pytest.mark.asyncio
async def test_challenge_leaderboard_and_distribution(league_setup):
    s = league_setup
    challenge = await make_challenge(s["session"], s["league"], total_points=90)
    challenge_id = challenge.id
    sub_a = await submit(s, challenge_id, "player_a1")
    sub_b = await submit(s, challenge_id, "player_b1")
    await review(s, sub_a["id"], points=10)
    await review(s, sub_b["id"])

    board = await challenge_service.get_challenge_leaderboard(
        s["session"], s["league_id"], challenge_id, s["user_ids"]["player_a2"]
    )
    assert [t["team_name"] for t in board["teams"]] == ["Beta", "Alpha"]
    assert board["teams"][0]["rank"] == 1

    distribution = await challenge_service.get_point_distribution(
        s["session"], s["league_id"], challenge_id, s["user_ids"]["player_a2"]
    )
    assert distribution["team_size"] == 3
    assert distribution["max_points_per_member"] == 30.0

    with pytest.raises(Forbidden):
        await challenge_service.get_point_distribution(
            s["session"], s["league_id"], challenge_id, s["user_ids"]["player_a2"], team_id=s["team_ids"]["beta"]
        )
