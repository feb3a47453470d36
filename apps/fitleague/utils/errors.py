"""
Rule violation errors raised by the service layer.

Each error carries the HTTP status it maps to, so route handlers can let them
propagate and a single exception handler renders them as
``{"detail": message, **extra}``.
"""

from typing import Optional


class LeagueRuleError(Exception):
    """Base class for league rule violations."""

    status_code = 400

    def __init__(self, message: str, extra: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> dict:
        return {"detail": self.message, **self.extra}


class Unauthorized(LeagueRuleError):
    """No identity, or the identity token could not be verified."""

    status_code = 401
    headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(LeagueRuleError):
    """Identity present but role, ownership or review window is insufficient."""

    status_code = 403


class NotMember(Forbidden):
    """The user does not belong to the league."""

    def __init__(self, message: str = "You are not a member of this league", extra=None):
        super().__init__(message, extra)


class NotFound(LeagueRuleError):
    status_code = 404


class ValidationFailed(LeagueRuleError):
    """Malformed or out-of-range input."""

    status_code = 400


class InvalidTransition(LeagueRuleError):
    """The requested state change is not allowed from the current state."""

    status_code = 400


class CapacityExceeded(LeagueRuleError):
    """A cap would be exceeded (rest days, points, league capacity)."""

    status_code = 400


class PointsExceedLimit(CapacityExceeded):
    """Awarded points above the per-member cap. Carries the cap for display."""

    def __init__(self, max_allowed: float, message: Optional[str] = None):
        super().__init__(
            message or f"Points exceed the maximum allowed per member ({max_allowed})",
            {"max_allowed": max_allowed},
        )
        self.max_allowed = max_allowed
