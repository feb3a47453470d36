"""
Shared pytest configuration for fitleague tests.

Database tests run against an in-memory SQLite database (aiosqlite) created
fresh for every test. Set TEST_DATABASE_URL to run them against another
database; its name must contain "test".
"""

import os

os.environ.setdefault("ENV", "test")

from datetime import date, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from fitleague.database.db import Base
from fitleague.database.init_defaults import seed_roles
from fitleague.database.models import (
    EffortEntry,
    League,
    LeagueChallenge,
    LeagueMember,
    LeagueStatus,
    Team,
    User,
)
from fitleague.services import redis_service, role_service

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

if not TEST_DATABASE_URL.startswith("sqlite"):
    db_name = TEST_DATABASE_URL.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(f"Refusing to run tests against database '{db_name}'")


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh schema for each test."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        from fitleague.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Session with the role catalogue seeded."""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        await seed_roles(session)
        await session.commit()
        yield session


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Run every test without Redis; caching is skipped when the client is unavailable."""

    async def fake_get_redis_client():
        return None

    monkeypatch.setattr(redis_service, "get_redis_client", fake_get_redis_client)


# ============================================================================
# Factories
# ============================================================================

async def make_user(session, username, date_of_birth=None, platform_role="user"):
    user = User(username=username, date_of_birth=date_of_birth, platform_role=platform_role)
    session.add(user)
    await session.flush()
    return user


async def make_league(
    session,
    creator,
    name="Summer League",
    start_date=date(2025, 6, 1),
    end_date=date(2025, 6, 30),
    status=LeagueStatus.LAUNCHED.value,
    rest_days=1,
    total_rest_days=None,
    normalize=False,
    max_members=None,
):
    league = League(
        name=name,
        start_date=start_date,
        end_date=end_date,
        status=status,
        rest_days=rest_days,
        total_rest_days=total_rest_days,
        normalize_points_by_team_size=normalize,
        max_members=max_members,
        created_by=creator.id,
    )
    session.add(league)
    await session.flush()
    return league


async def make_team(session, league, name):
    team = Team(league_id=league.id, name=name)
    session.add(team)
    await session.flush()
    return team


async def make_member(session, league, user, team=None, roles=()):
    member = LeagueMember(league_id=league.id, user_id=user.id, team_id=team.id if team else None)
    session.add(member)
    await session.flush()
    for role in roles:
        await role_service.add_role(session, user.id, league.id, role)
    return member


async def make_entry(
    session,
    member,
    day,
    entry_type="workout",
    status="pending",
    rr_value=1.0,
    created_at=None,
    modified_at=None,
    workout_type="run",
    duration=45,
    notes=None,
):
    entry = EffortEntry(
        league_member_id=member.id,
        date=day,
        type=entry_type,
        workout_type=workout_type if entry_type == "workout" else None,
        duration=duration if entry_type == "workout" else None,
        rr_value=rr_value,
        status=status,
        created_at=created_at or datetime(2025, 6, 10, 12, 0),
        modified_at=modified_at,
        notes=notes,
    )
    session.add(entry)
    await session.flush()
    return entry


async def make_challenge(
    session,
    league,
    challenge_type="team",
    total_points=100,
    start_date=date(2025, 6, 1),
    end_date=date(2025, 6, 7),
    status="scheduled",
    name="Plank Week",
):
    challenge = LeagueChallenge(
        league_id=league.id,
        name=name,
        challenge_type=challenge_type,
        total_points=total_points,
        start_date=start_date,
        end_date=end_date,
        status=status,
    )
    session.add(challenge)
    await session.flush()
    return challenge


@pytest_asyncio.fixture
async def league_setup(db_session):
    """
    A launched June 2025 league with two teams.

    Team Alpha: captain_a (captain + player), player_a1, player_a2
    Team Beta:  player_b1
    host: league creator (no team), governor: no team
    """
    host = await make_user(db_session, "host")
    governor = await make_user(db_session, "governor")
    captain_a = await make_user(db_session, "captain_a")
    player_a1 = await make_user(db_session, "player_a1", date_of_birth=date(1990, 1, 1))
    player_a2 = await make_user(db_session, "player_a2")
    player_b1 = await make_user(db_session, "player_b1")

    league = await make_league(db_session, host)
    alpha = await make_team(db_session, league, "Alpha")
    beta = await make_team(db_session, league, "Beta")

    members = {
        "host": await make_member(db_session, league, host, roles=("host",)),
        "governor": await make_member(db_session, league, governor, roles=("governor",)),
        "captain_a": await make_member(db_session, league, captain_a, alpha, roles=("captain", "player")),
        "player_a1": await make_member(db_session, league, player_a1, alpha, roles=("player",)),
        "player_a2": await make_member(db_session, league, player_a2, alpha, roles=("player",)),
        "player_b1": await make_member(db_session, league, player_b1, beta, roles=("player",)),
    }
    await db_session.commit()

    # Plain ids stay usable after a rollback expires the ORM instances
    return {
        "session": db_session,
        "league_id": league.id,
        "team_ids": {"alpha": alpha.id, "beta": beta.id},
        "user_ids": {name: user.id for name, user in (
            ("host", host), ("governor", governor), ("captain_a", captain_a),
            ("player_a1", player_a1), ("player_a2", player_a2), ("player_b1", player_b1),
        )},
        "member_ids": {name: member.id for name, member in members.items()},
        "league": league,
        "teams": {"alpha": alpha, "beta": beta},
        "users": {
            "host": host,
            "governor": governor,
            "captain_a": captain_a,
            "player_a1": player_a1,
            "player_a2": player_a2,
            "player_b1": player_b1,
        },
        "members": members,
    }


def hours_ago(now, hours):
    return now - timedelta(hours=hours)
