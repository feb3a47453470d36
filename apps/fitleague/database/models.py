"""
SQLAlchemy ORM models for the fitness league system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from fitleague.database.db import Base
from fitleague.utils.datetime_utils import utcnow


class LeagueStatus(str, enum.Enum):
    """League lifecycle status."""

    DRAFT = "draft"
    LAUNCHED = "launched"
    COMPLETED = "completed"


class RoleName(str, enum.Enum):
    """League roles, listed from highest to lowest precedence."""

    HOST = "host"
    GOVERNOR = "governor"
    CAPTAIN = "captain"
    PLAYER = "player"


class EntryType(str, enum.Enum):
    """Effort entry type."""

    WORKOUT = "workout"
    REST = "rest"


class EntryStatus(str, enum.Enum):
    """Effort entry review status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED_RESUBMIT = "rejected_resubmit"
    REJECTED_PERMANENT = "rejected_permanent"


class DonationStatus(str, enum.Enum):
    """Rest day donation status (two-stage approval)."""

    PENDING = "pending"
    CAPTAIN_APPROVED = "captain_approved"
    APPROVED = "approved"
    REJECTED = "rejected"


class ChallengeType(str, enum.Enum):
    """Challenge scoring scope."""

    INDIVIDUAL = "individual"
    TEAM = "team"
    SUB_TEAM = "sub_team"


class ChallengeStatus(str, enum.Enum):
    """League challenge status. Some values are derived from dates at read time."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    SUBMISSION_CLOSED = "submission_closed"
    PUBLISHED = "published"
    CLOSED = "closed"


class SubmissionStatus(str, enum.Enum):
    """Challenge submission review status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base):
    """User accounts. Identity is issued externally; this row holds the profile."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)  # Age is derived for RR thresholds
    platform_role = Column(String, default="user", nullable=False)  # 'user' or 'admin'
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    league_memberships = relationship("LeagueMember", back_populates="user")

    __table_args__ = (Index("idx_users_username", "username"),)


class League(Base):
    """Time-bound fitness competition."""

    __tablename__ = "leagues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    status = Column(String, default=LeagueStatus.DRAFT.value, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # Inclusive
    rest_days = Column(Integer, default=1, nullable=False)  # Weekly rest day allowance
    total_rest_days = Column(Integer, nullable=True)  # League-wide allowance; derived when null
    num_teams = Column(Integer, nullable=True)
    team_size = Column(Integer, nullable=True)
    max_members = Column(Integer, nullable=True)
    normalize_points_by_team_size = Column(Boolean, default=False, nullable=False)
    invite_code = Column(String(16), nullable=True, unique=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # Host
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    members = relationship("LeagueMember", back_populates="league", cascade="all, delete-orphan")
    teams = relationship("Team", back_populates="league", cascade="all, delete-orphan")
    challenges = relationship("LeagueChallenge", back_populates="league")
    creator = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        CheckConstraint(
            f"status IN ({', '.join(repr(e.value) for e in LeagueStatus)})",
            name="ck_leagues_status_valid",
        ),
        CheckConstraint("end_date >= start_date", name="ck_leagues_date_range"),
        Index("idx_leagues_invite_code", "invite_code"),
    )


class Team(Base):
    """Team within a league."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    league = relationship("League", back_populates="teams")
    members = relationship("LeagueMember", back_populates="team")

    __table_args__ = (
        UniqueConstraint("league_id", "name"),
        Index("idx_teams_league", "league_id"),
    )


class LeagueMember(Base):
    """Join table (User ↔ League), optionally assigned to a team."""

    __tablename__ = "league_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    league = relationship("League", back_populates="members")
    user = relationship("User", back_populates="league_memberships")
    team = relationship("Team", back_populates="members")

    __table_args__ = (
        UniqueConstraint("league_id", "user_id"),
        Index("idx_league_members_league", "league_id"),
        Index("idx_league_members_user", "user_id"),
        Index("idx_league_members_team", "team_id"),
    )


class Role(Base):
    """Role catalogue (host, governor, captain, player)."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_name = Column(String, nullable=False, unique=True)


class AssignedRole(Base):
    """Role held by a user within a league. A user may hold several."""

    __tablename__ = "assigned_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    role = relationship("Role")

    __table_args__ = (
        UniqueConstraint("user_id", "league_id", "role_id"),
        Index("idx_assigned_roles_user_league", "user_id", "league_id"),
    )


class EffortEntry(Base):
    """One logged workout or rest day for a member on a date."""

    __tablename__ = "effort_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_member_id = Column(Integer, ForeignKey("league_members.id"), nullable=False)
    date = Column(Date, nullable=False)
    type = Column(String(10), nullable=False)
    workout_type = Column(String, nullable=True)
    duration = Column(Float, nullable=True)  # Minutes
    distance = Column(Float, nullable=True)  # Kilometres
    steps = Column(Integer, nullable=True)
    holes = Column(Integer, nullable=True)
    rr_value = Column(Float, nullable=True)
    status = Column(String(20), default=EntryStatus.PENDING.value, nullable=False)
    rejection_reason = Column(Text, nullable=True)
    proof_url = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    is_auto_rest = Column(Boolean, default=False, nullable=False)
    reupload_of = Column(Integer, ForeignKey("effort_entries.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    modified_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # NULL for system actions
    modified_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    league_member = relationship("LeagueMember")
    original = relationship("EffortEntry", remote_side="EffortEntry.id")

    # No unique constraint on (member, date, type): a rejected_resubmit row and its
    # reupload share the key. Uniqueness of live entries is checked before insert.
    __table_args__ = (
        CheckConstraint(
            f"type IN ({', '.join(repr(e.value) for e in EntryType)})",
            name="ck_effort_entries_type_valid",
        ),
        CheckConstraint(
            f"status IN ({', '.join(repr(e.value) for e in EntryStatus)})",
            name="ck_effort_entries_status_valid",
        ),
        Index("idx_effort_entries_member_date", "league_member_id", "date", "type"),
        Index("idx_effort_entries_status_created", "status", "created_at"),
    )


class RestDayDonation(Base):
    """Transfer of rest day allowance between two members of a league."""

    __tablename__ = "rest_day_donations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    donor_member_id = Column(Integer, ForeignKey("league_members.id"), nullable=False)
    receiver_member_id = Column(Integer, ForeignKey("league_members.id"), nullable=False)
    days_transferred = Column(Integer, nullable=False)
    status = Column(String(20), default=DonationStatus.PENDING.value, nullable=False)
    notes = Column(Text, nullable=True)
    proof_url = Column(String, nullable=True)
    captain_approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    captain_approved_at = Column(DateTime(timezone=True), nullable=True)
    final_approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    final_approved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    donor = relationship("LeagueMember", foreign_keys=[donor_member_id])
    receiver = relationship("LeagueMember", foreign_keys=[receiver_member_id])

    __table_args__ = (
        CheckConstraint("donor_member_id <> receiver_member_id", name="ck_donations_distinct_members"),
        CheckConstraint("days_transferred > 0", name="ck_donations_positive_days"),
        CheckConstraint(
            f"status IN ({', '.join(repr(e.value) for e in DonationStatus)})",
            name="ck_donations_status_valid",
        ),
        Index("idx_donations_league", "league_id"),
        Index("idx_donations_donor", "donor_member_id"),
        Index("idx_donations_receiver", "receiver_member_id"),
    )


class Challenge(Base):
    """Challenge template that hosts can activate inside a league."""

    __tablename__ = "challenges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    challenge_type = Column(String(20), default=ChallengeType.INDIVIDUAL.value, nullable=False)
    total_points = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class LeagueChallenge(Base):
    """Activation of a challenge (template or custom) within a league."""

    __tablename__ = "league_challenges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    challenge_id = Column(Integer, ForeignKey("challenges.id"), nullable=True)  # NULL for custom
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    challenge_type = Column(String(20), nullable=False)
    total_points = Column(Float, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(String(20), default=ChallengeStatus.DRAFT.value, nullable=False)
    pricing_id = Column(Integer, ForeignKey("challenge_pricing.id"), nullable=True)
    payment_reference = Column(String, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    league = relationship("League", back_populates="challenges")
    template = relationship("Challenge")
    submissions = relationship("ChallengeSubmission", back_populates="league_challenge")

    __table_args__ = (
        CheckConstraint(
            f"challenge_type IN ({', '.join(repr(e.value) for e in ChallengeType)})",
            name="ck_league_challenges_type_valid",
        ),
        Index("idx_league_challenges_league", "league_id"),
    )


class ChallengeSubmission(Base):
    """A member's proof for a league challenge (one per member per challenge)."""

    __tablename__ = "challenge_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_challenge_id = Column(Integer, ForeignKey("league_challenges.id"), nullable=False)
    league_member_id = Column(Integer, ForeignKey("league_members.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True)  # Snapshot for team challenges
    proof_url = Column(String, nullable=True)
    status = Column(String(20), default=SubmissionStatus.PENDING.value, nullable=False)
    awarded_points = Column(Float, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    league_challenge = relationship("LeagueChallenge", back_populates="submissions")
    league_member = relationship("LeagueMember")

    __table_args__ = (
        UniqueConstraint("league_challenge_id", "league_member_id"),
        Index("idx_challenge_submissions_challenge_status", "league_challenge_id", "status"),
    )


class ChallengeTeamScore(Base):
    """Aggregated challenge points per team (rewritten on every recompute)."""

    __tablename__ = "challenge_team_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_challenge_id = Column(Integer, ForeignKey("league_challenges.id"), nullable=False)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    score = Column(Float, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("league_challenge_id", "team_id"),
        Index("idx_challenge_team_scores_league", "league_id"),
    )


class ChallengeIndividualScore(Base):
    """Aggregated challenge points per member (rewritten on every recompute)."""

    __tablename__ = "challenge_individual_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    league_challenge_id = Column(Integer, ForeignKey("league_challenges.id"), nullable=False)
    league_id = Column(Integer, ForeignKey("leagues.id"), nullable=False)
    league_member_id = Column(Integer, ForeignKey("league_members.id"), nullable=False)
    score = Column(Float, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("league_challenge_id", "league_member_id"),
        Index("idx_challenge_individual_scores_league", "league_id"),
    )


class ChallengePricing(Base):
    """Challenge activation pricing. Read-mostly, rewritten wholesale on edit."""

    __tablename__ = "challenge_pricing"

    id = Column(Integer, primary_key=True, autoincrement=True)
    per_day_rate = Column(Float, nullable=False)
    tax = Column(Float, default=18, nullable=False)  # Percent
    admin_markup = Column(Float, nullable=True)  # Percent
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    modified_at = Column(DateTime(timezone=True), nullable=True)


class Setting(Base):
    """Runtime configuration overrides."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
