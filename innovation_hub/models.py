from typing import Optional, List
from datetime import datetime, timezone
import enum

from sqlalchemy import Column, DateTime, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    # naive UTC, matches what SQLite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def timestamp_field(**kwargs):
    # plain DateTime column, so naive UTC values bind and read back unchanged
    return Field(sa_type=DateTime(timezone=False), **kwargs)


class ChallengeStatus(enum.StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    JUDGING = "judging"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SubmissionStatus(enum.StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    EVALUATED = "evaluated"
    WINNER = "winner"
    ARCHIVED = "archived"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(unique=True)
    password_hash: str
    display_name: str
    email: Optional[str] = None
    roles: str = ""  # comma separated, see permissions.Role
    created_at: datetime = timestamp_field(default_factory=utcnow)

    @property
    def role_set(self) -> set:
        return {r.strip() for r in self.roles.split(",") if r.strip()}


class Challenge(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: str
    category: str = Field(index=True)
    status: str = Field(default=ChallengeStatus.DRAFT, index=True)  # draft | active | judging | completed | cancelled
    deadline: Optional[datetime] = timestamp_field(default=None)
    prize_description: Optional[str] = None
    requirements: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    author_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)


class ChallengeSubmission(SQLModel, table=True):
    __tablename__ = "challenge_submission"
    __table_args__ = (
        UniqueConstraint("challenge_id", "author_id", name="uq_submission_challenge_author"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    challenge_id: int = Field(foreign_key="challenge.id", index=True)
    author_id: int = Field(foreign_key="user.id", index=True)
    title: str
    description: str
    solution_approach: str
    implementation_plan: str
    attachments: List[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    team_submission: bool = False
    team_members: Optional[str] = None
    status: str = SubmissionStatus.DRAFT
    submitted_at: Optional[datetime] = timestamp_field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
    updated_at: datetime = timestamp_field(default_factory=utcnow)


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    action: str = Field(index=True)
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    old_values: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    new_values: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = timestamp_field(default_factory=utcnow)


class AppNotification(SQLModel, table=True):
    __tablename__ = "app_notification"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    type: str
    title: str
    message: str
    related_type: Optional[str] = None
    related_id: Optional[int] = None
    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    read_at: Optional[datetime] = timestamp_field(default=None)
    created_at: datetime = timestamp_field(default_factory=utcnow)
