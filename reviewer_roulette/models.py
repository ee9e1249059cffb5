"""Domain models for reviewer roulette, mapped with SQLAlchemy."""

import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from sqlalchemy import JSON, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _now() -> datetime:
    return datetime.now()


class Base(DeclarativeBase):
    """Declarative base shared by every mapped model."""


class MRStatus(str, Enum):
    """Lifecycle states of a tracked merge request."""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    MERGED = "merged"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


class ReviewerRole(str, Enum):
    """The slot a reviewer was picked for."""

    CODEOWNER = "codeowner"
    TEAM_MEMBER = "team_member"
    EXTERNAL = "external"

    def __str__(self) -> str:
        return self.value


class User(Base):
    """A GitLab user known to the system."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gitlab_id: Mapped[int] = mapped_column(Integer, unique=True, nullable=False, default=0)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="")
    role: Mapped[str] = mapped_column(String(50), default="")
    team: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class OOOStatus(Base):
    """An out-of-office period for a user."""

    __tablename__ = "ooo_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    user: Mapped[User] = relationship(foreign_keys=[user_id])
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reason: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Return True when ``now`` lies strictly inside the period."""
        moment = now if now is not None else _now()
        return self.start_date < moment < self.end_date


class Badge(Base):
    """A badge users can earn."""

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    icon: Mapped[str] = mapped_column(String(50), default="")
    criteria: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


def _string_field(raw: Mapping[str, Any], name: str) -> str:
    value = raw.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"badge criteria field {name!r} must be a string")
    return value


@dataclass
class BadgeCriteria:
    """The rule for earning a badge, stored as JSON on the badge."""

    metric: str = ""
    operator: str = ""
    value: Any = None
    period: str = ""

    @classmethod
    def from_json(cls, raw: Union[str, bytes, bytearray, Mapping[str, Any]]) -> "BadgeCriteria":
        """Build criteria from a JSON document or an already decoded mapping."""
        if isinstance(raw, (str, bytes, bytearray)):
            raw = json.loads(raw)
        if not isinstance(raw, Mapping):
            raise ValueError("badge criteria must be a JSON object")
        return cls(
            metric=_string_field(raw, "metric"),
            operator=_string_field(raw, "operator"),
            value=raw.get("value"),
            period=_string_field(raw, "period"),
        )

    def to_json(self) -> str:
        """Encode the criteria; an empty period is left out."""
        document: dict = {"metric": self.metric, "operator": self.operator, "value": self.value}
        if self.period:
            document["period"] = self.period
        return json.dumps(document, separators=(",", ":"), ensure_ascii=False)


class UserBadge(Base):
    """A badge earned by a user."""

    __tablename__ = "user_badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    user: Mapped[User] = relationship(foreign_keys=[user_id])
    badge_id: Mapped[int] = mapped_column(ForeignKey("badges.id"), nullable=False, index=True)
    badge: Mapped[Badge] = relationship(foreign_keys=[badge_id])
    earned_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class Configuration(Base):
    """A configuration key with a JSON value."""

    __tablename__ = "configuration"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class MRReview(Base):
    """Review tracking for one merge request."""

    __tablename__ = "mr_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    gitlab_mr_iid: Mapped[int] = mapped_column(Integer, nullable=False)
    gitlab_project_id: Mapped[int] = mapped_column(Integer, nullable=False)
    mr_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    mr_title: Mapped[str] = mapped_column(Text, default="")
    mr_author_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), index=True)
    mr_author: Mapped[Optional[User]] = relationship(foreign_keys=[mr_author_id])
    team: Mapped[str] = mapped_column(String(100), default="")
    roulette_triggered_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    roulette_triggered_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    triggered_by: Mapped[Optional[User]] = relationship(foreign_keys=[roulette_triggered_by])
    bot_comment_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    first_review_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    merged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(50), index=True, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)

    assignments: Mapped[List["ReviewerAssignment"]] = relationship(back_populates="mr_review")


class ReviewerAssignment(Base):
    """A reviewer assigned to a merge request."""

    __tablename__ = "reviewer_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mr_review_id: Mapped[int] = mapped_column(
        ForeignKey("mr_reviews.id"), nullable=False, index=True
    )
    mr_review: Mapped[MRReview] = relationship(back_populates="assignments")
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    user: Mapped[User] = relationship(foreign_keys=[user_id])
    role: Mapped[str] = mapped_column(String(50), default="")
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    started_review_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    first_comment_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    comment_count: Mapped[int] = mapped_column(Integer, default=0)
    comment_length: Mapped[int] = mapped_column("comment_total_length", Integer, default=0)


class ReviewMetrics(Base):
    """Aggregated review metrics for a day, team, user or project."""

    __tablename__ = "review_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    team: Mapped[str] = mapped_column(String(100), default="")
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), index=True)
    user: Mapped[Optional[User]] = relationship(foreign_keys=[user_id])
    project_id: Mapped[Optional[int]] = mapped_column(Integer)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0)
    completed_reviews: Mapped[int] = mapped_column(Integer, default=0)
    avg_ttfr: Mapped[Optional[int]] = mapped_column(Integer)
    avg_time_to_approval: Mapped[Optional[int]] = mapped_column(Integer)
    avg_comment_count: Mapped[Optional[float]] = mapped_column(Float)
    avg_comment_length: Mapped[Optional[float]] = mapped_column(Float)
    engagement_score: Mapped[Optional[float]] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)