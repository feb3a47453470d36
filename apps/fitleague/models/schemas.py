"""
Pydantic models for API request/response validation.
"""

from typing import Optional, List, Literal
from pydantic import BaseModel, Field, ConfigDict, field_validator


class EntryCreate(BaseModel):
    """Workout or rest day logged by the current user."""

    model_config = ConfigDict(populate_by_name=True)
    league_id: int
    date: str
    type: Literal["workout", "rest"]
    workout_type: Optional[str] = None
    duration: Optional[float] = Field(default=None, ge=0)
    distance: Optional[float] = Field(default=None, ge=0)
    steps: Optional[int] = Field(default=None, ge=0)
    holes: Optional[int] = Field(default=None, ge=0)
    proof_url: Optional[str] = None
    notes: Optional[str] = None
    tz_offset_minutes: Optional[int] = Field(default=0, alias="tzOffsetMinutes")


class RunRatePreviewRequest(BaseModel):
    type: Literal["workout", "rest"] = "workout"
    workout_type: Optional[str] = None
    duration: Optional[float] = Field(default=None, ge=0)
    distance: Optional[float] = Field(default=None, ge=0)
    steps: Optional[int] = Field(default=None, ge=0)
    holes: Optional[int] = Field(default=None, ge=0)


class RunRatePreviewResponse(BaseModel):
    rr_value: float
    meets_minimum: bool
    min_rr: float
    max_rr: float
    thresholds: dict


class SubmissionValidateRequest(BaseModel):
    """Review decision for an effort entry."""

    model_config = ConfigDict(populate_by_name=True)
    status: str
    rejection_reason: Optional[str] = None
    awarded_points: Optional[float] = Field(default=None, alias="awardedPoints")


class AutoRestDaysRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    dates: List[str] = Field(default_factory=list)
    tz_offset_minutes: Optional[int] = Field(default=0, alias="tzOffsetMinutes")
    tz_name: Optional[str] = Field(default=None, alias="timezone")


class AutoRestDaysResponse(BaseModel):
    assignedDates: List[str]
    skippedDates: List[str]


class DonationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    receiver_member_id: int = Field(alias="receiverMemberId")
    days_transferred: int = Field(alias="daysTransferred")
    notes: Optional[str] = None
    proof_url: Optional[str] = Field(default=None, alias="proofUrl")


class DonationAction(BaseModel):
    action: Literal["approve", "reject"]


class LeagueCreate(BaseModel):
    name: str
    description: Optional[str] = None
    start_date: str
    end_date: str
    rest_days: int = Field(default=1, ge=0)
    total_rest_days: Optional[int] = Field(default=None, ge=0)
    num_teams: Optional[int] = Field(default=None, ge=1)
    team_size: Optional[int] = Field(default=None, ge=1)
    max_members: Optional[int] = Field(default=None, ge=1)
    normalize_points_by_team_size: bool = False

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()


class LeagueResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: str
    start_date: str
    end_date: str
    rest_days: int
    total_rest_days: Optional[int] = None
    total_rest_allowance: int
    num_teams: Optional[int] = None
    team_size: Optional[int] = None
    max_members: Optional[int] = None
    normalize_points_by_team_size: bool
    invite_code: Optional[str] = None
    created_by: Optional[int] = None


class LeagueJoin(BaseModel):
    invite_code: Optional[str] = None


class TeamCreate(BaseModel):
    name: str


class MemberTeamUpdate(BaseModel):
    team_id: Optional[int] = None


class RoleChange(BaseModel):
    user_id: int
    role_name: Literal["host", "governor", "captain", "player"]


class LeagueChallengeCreate(BaseModel):
    challenge_id: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    challenge_type: Optional[Literal["individual", "team", "sub_team"]] = None
    total_points: Optional[float] = Field(default=None, ge=0)
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ChallengeActivate(BaseModel):
    payment_reference: str


class ChallengeSubmissionCreate(BaseModel):
    proof_url: str


class ChallengeReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    status: Literal["approved", "rejected"]
    awarded_points: Optional[float] = Field(default=None, alias="awardedPoints")


class PricingUpdate(BaseModel):
    per_day_rate: float = Field(ge=0)
    tax: Optional[float] = Field(default=None, ge=0)
    admin_markup: Optional[float] = None


class PriceQuoteRequest(BaseModel):
    start_date: str
    end_date: str


class SettingUpdate(BaseModel):
    value: str


class UserCreate(BaseModel):
    username: str
    email: Optional[str] = None
    date_of_birth: Optional[str] = None
    platform_role: Literal["user", "admin"] = "user"
