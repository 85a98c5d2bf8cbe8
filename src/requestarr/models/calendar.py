"""
Calendar preference, feed token and release subscription models.
"""

from typing import Literal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from requestarr.database import Base, utcnow

CalendarView = Literal["month", "week", "list", "agenda"]
CalendarEventType = Literal["movie_release", "tv_premiere", "tv_episode", "season_premiere"]

CALENDAR_VIEWS: tuple[str, ...] = ("month", "week", "list", "agenda")
CALENDAR_EVENT_TYPES: tuple[str, ...] = ("movie_release", "tv_premiere", "tv_episode", "season_premiere")

DEFAULT_CALENDAR_FILTERS: dict = {"movies": True, "tv": True, "requests": True, "sonarr": True, "radarr": True}


class CalendarPreferences(Base):
    """Per-user calendar view settings."""

    __tablename__ = "calendar_preferences"

    user_id = Column(Integer, ForeignKey("app_user.id", ondelete="CASCADE"), primary_key=True)
    default_view = Column(
        Enum(*CALENDAR_VIEWS, name="calendar_view_enum", native_enum=False, create_constraint=True),
        default="month",
        nullable=False,
    )
    filters = Column(JSON, default=lambda: dict(DEFAULT_CALENDAR_FILTERS), nullable=False)
    genre_filters = Column(JSON, nullable=True)
    monitored_only = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class CalendarFeedToken(Base):
    """Secret token for a user's iCal feed URL."""

    __tablename__ = "calendar_feed_token"

    user_id = Column(Integer, ForeignKey("app_user.id", ondelete="CASCADE"), primary_key=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    rotated_at = Column(DateTime, nullable=True)


class CalendarEventSubscription(Base):
    """
    A user's interest in an upcoming release.

    season_number and episode_number are NULL for movie and series level
    events, so the unique constraint alone does not deduplicate those rows.
    """

    __tablename__ = "calendar_event_subscription"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(
        Enum(*CALENDAR_EVENT_TYPES, name="calendar_event_type_enum", native_enum=False, create_constraint=True),
        nullable=False,
    )
    tmdb_id = Column(Integer, nullable=False)
    season_number = Column(Integer, nullable=True)
    episode_number = Column(Integer, nullable=True)
    title = Column(Text, nullable=False)
    air_date = Column(Date, nullable=True)
    notify_on_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "event_type",
            "tmdb_id",
            "season_number",
            "episode_number",
            name="uq_calendar_event_subscription",
        ),
        Index("idx_calendar_event_subscription_user", "user_id", "created_at"),
    )
