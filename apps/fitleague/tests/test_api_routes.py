"""
Unit tests for the API endpoints.

Services are mocked; these tests cover request parsing, authentication and
the mapping of league rule errors to HTTP status codes.
"""
import pytest
from fastapi.testclient import TestClient

from fitleague.api.main import app
from fitleague.database.db import get_db_session
from fitleague.services import (
    auth_service,
    challenge_service,
    leaderboard_service,
    league_service,
    pricing_service,
    rest_day_service,
    submission_service,
    user_service,
)
from fitleague.utils.errors import (
    CapacityExceeded,
    Forbidden,
    InvalidTransition,
    NotFound,
    NotMember,
    PointsExceedLimit,
)


# ============================================================================
# Test Fixtures and Helpers
# ============================================================================

@pytest.fixture(autouse=True)
def no_database():
    """Route handlers receive a placeholder session; services are mocked."""

    async def fake_get_db_session():
        yield None

    app.dependency_overrides[get_db_session] = fake_get_db_session
    yield
    app.dependency_overrides.clear()


def make_client_with_auth(monkeypatch, user_id=1, platform_role="user"):
    """Helper to create authenticated test client."""
    def fake_verify_token(token):
        return {"user_id": user_id}

    async def fake_get_user_by_id(session, uid):
        return {
            "id": user_id,
            "username": "tester",
            "date_of_birth": None,
            "platform_role": platform_role,
        }

    monkeypatch.setattr(auth_service, "verify_token", fake_verify_token, raising=True)
    monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id, raising=True)
    return TestClient(app), {"Authorization": "Bearer dummy"}


def raise_async(exc):
    async def fake(*args, **kwargs):
        raise exc
    return fake


# ============================================================================
# Authentication
# ============================================================================

class TestAuthentication:

    def test_health_is_public(self):
        response = TestClient(app).get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_missing_token(self):
        response = TestClient(app).get("/api/leagues/1/leaderboard")
        assert response.status_code == 401
        assert response.json()["detail"] == "Authentication required"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_invalid_token(self, monkeypatch):
        monkeypatch.setattr(auth_service, "verify_token", lambda token: None, raising=True)
        response = TestClient(app).get(
            "/api/leagues/1/leaderboard", headers={"Authorization": "Bearer garbage"}
        )
        assert response.status_code == 401

    def test_platform_admin_required(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.put("/api/challenge-pricing", json={"per_day_rate": 10}, headers=headers)
        assert response.status_code == 403


# ============================================================================
# Error mapping
# ============================================================================

class TestErrorMapping:

    @pytest.mark.parametrize(
        "exc,status",
        [
            (NotMember(), 403),
            (Forbidden("Captains can only review their own team"), 403),
            (NotFound("League not found"), 404),
            (InvalidTransition("Entry is already approved"), 400),
            (CapacityExceeded("Not enough rest days"), 400),
        ],
    )
    def test_rule_errors(self, monkeypatch, exc, status):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(leaderboard_service, "get_league_leaderboard", raise_async(exc), raising=True)
        response = client.get("/api/leagues/1/leaderboard", headers=headers)
        assert response.status_code == status
        assert response.json()["detail"] == exc.message

    def test_points_limit_includes_max_allowed(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            challenge_service, "review_challenge_submission", raise_async(PointsExceedLimit(33.33)), raising=True
        )
        response = client.post(
            "/api/challenge-submissions/5/validate",
            json={"status": "approved", "awardedPoints": 40},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["max_allowed"] == 33.33

    def test_unexpected_error_is_500(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            leaderboard_service, "get_league_leaderboard", raise_async(RuntimeError("boom")), raising=True
        )
        response = client.get("/api/leagues/1/leaderboard", headers=headers)
        assert response.status_code == 500


# ============================================================================
# Endpoints
# ============================================================================

class TestEntryEndpoints:

    def test_create_entry_passes_timezone_offset(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_id=7)
        captured = {}

        async def fake_create_entry(session, user_id, league_id, payload, tz_offset_minutes=None):
            captured.update(user_id=user_id, league_id=league_id, payload=payload, tz=tz_offset_minutes)
            return {"id": 1, "status": "pending"}

        monkeypatch.setattr(submission_service, "create_entry", fake_create_entry, raising=True)
        response = client.post(
            "/api/entries",
            json={"league_id": 3, "date": "2025-06-10", "type": "rest", "tzOffsetMinutes": -330},
            headers=headers,
        )
        assert response.status_code == 200
        assert captured["user_id"] == 7
        assert captured["league_id"] == 3
        assert captured["tz"] == -330
        assert captured["payload"]["date"] == "2025-06-10"

    def test_validate_submission_wraps_result(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        captured = {}

        async def fake_validate(session, entry_id, user_id, status, rejection_reason=None, awarded_points=None):
            captured.update(entry_id=entry_id, status=status, awarded_points=awarded_points)
            return {"id": entry_id, "status": status}

        monkeypatch.setattr(submission_service, "validate_submission", fake_validate, raising=True)
        response = client.post(
            "/api/submissions/12/validate",
            json={"status": "approved", "awardedPoints": 1.5},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"id": 12, "status": "approved"}}
        assert captured == {"entry_id": 12, "status": "approved", "awarded_points": 1.5}


class TestRestDayEndpoints:

    def test_create_donation_uses_camel_case_body(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        captured = {}

        async def fake_create_donation(session, league_id, user_id, **kwargs):
            captured.update(kwargs)
            return {"id": 4, "status": "pending"}

        monkeypatch.setattr(rest_day_service, "create_donation", fake_create_donation, raising=True)
        response = client.post(
            "/api/leagues/2/rest-day-donations",
            json={"receiverMemberId": 9, "daysTransferred": 2},
            headers=headers,
        )
        assert response.status_code == 200
        assert captured["receiver_member_id"] == 9
        assert captured["days_transferred"] == 2


class TestChallengeEndpoints:

    def test_review_rejects_unknown_status(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.post(
            "/api/challenge-submissions/5/validate", json={"status": "maybe"}, headers=headers
        )
        assert response.status_code == 422


class TestLeagueEndpoints:

    def test_join_full_league(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        monkeypatch.setattr(
            league_service,
            "join_league",
            raise_async(CapacityExceeded("League is full", {"max_members": 10})),
            raising=True,
        )
        response = client.post("/api/leagues/join", json={"invite_code": "ABCD1234"}, headers=headers)
        assert response.status_code == 400
        assert response.json() == {"detail": "League is full", "max_members": 10}


class TestAdminEndpoints:

    def test_update_pricing_as_admin(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, platform_role="admin")

        async def fake_upsert(session, per_day_rate, tax=None, admin_markup=None):
            return {"id": 1, "per_day_rate": per_day_rate, "tax": tax if tax is not None else 18}

        monkeypatch.setattr(pricing_service, "upsert_pricing", fake_upsert, raising=True)
        response = client.put("/api/challenge-pricing", json={"per_day_rate": 25}, headers=headers)
        assert response.status_code == 200
        assert response.json()["per_day_rate"] == 25

    def test_negative_rate_rejected_by_schema(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, platform_role="admin")
        response = client.put("/api/challenge-pricing", json={"per_day_rate": -1}, headers=headers)
        assert response.status_code == 422


class TestCronEndpoints:

    def test_requires_secret(self, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        client = TestClient(app)
        assert client.post("/api/cron/auto-approve").status_code == 401
        assert client.post(
            "/api/cron/auto-approve", headers={"Authorization": "Bearer wrong"}
        ).status_code == 401

    def test_unset_secret_refuses_everyone(self, monkeypatch):
        monkeypatch.delenv("CRON_SECRET", raising=False)
        response = TestClient(app).post("/api/cron/auto-approve", headers={"Authorization": "Bearer anything"})
        assert response.status_code == 401

    def test_runs_job(self, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")

        async def fake_auto_approve(session):
            return {"approved": 3}

        monkeypatch.setattr(submission_service, "auto_approve_stale_entries", fake_auto_approve, raising=True)
        response = TestClient(app).post(
            "/api/cron/auto-approve", headers={"Authorization": "Bearer s3cret"}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "approved": 3}
