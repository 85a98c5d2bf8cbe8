"""
Auxiliary media models.

Shares, issues, per-user lists, recently viewed entries, dashboard sliders and
the 4K upgrade finder bookkeeping.
"""

import uuid
from typing import Literal

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from requestarr.database import Base, utcnow

MediaType = Literal["movie", "tv"]
MediaListType = Literal["favorite", "watchlist"]

MEDIA_TYPES: tuple[str, ...] = ("movie", "tv")
MEDIA_LIST_TYPES: tuple[str, ...] = ("favorite", "watchlist")


def _media_type_enum(name: str) -> Enum:
    return Enum(*MEDIA_TYPES, name=name, native_enum=False, create_constraint=True)


class MediaShare(Base):
    """
    Public share link for a movie or show page.

    A share can expire by time or by view count and may be password protected.
    """

    __tablename__ = "media_share"

    id = Column(Integer, primary_key=True)
    token = Column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
        comment="URL-safe token identifying the share",
    )
    media_type = Column(_media_type_enum("media_share_media_type_enum"), nullable=False)
    tmdb_id = Column(Integer, nullable=False)
    created_by = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at = Column(DateTime, nullable=True, index=True)
    view_count = Column(Integer, default=0, nullable=False)
    max_views = Column(Integer, nullable=True)
    password_hash = Column(Text, nullable=True, comment="Argon2id hash of the share password")

    # Last viewer metadata
    last_viewed_at = Column(DateTime, nullable=True)
    last_viewed_ip = Column(String(45), nullable=True)
    last_viewed_referrer = Column(Text, nullable=True)
    last_viewed_country = Column(String(8), nullable=True)
    last_viewed_ua_hash = Column(String(128), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<MediaShare(id={self.id}, media_type='{self.media_type}', tmdb_id={self.tmdb_id})>"

    @property
    def password_set(self) -> bool:
        return self.password_hash is not None


class MediaIssue(Base):
    """Playback/quality issue reported against a movie or show."""

    __tablename__ = "media_issue"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    media_type = Column(_media_type_enum("media_issue_media_type_enum"), nullable=False)
    tmdb_id = Column(Integer, nullable=False)
    title = Column(Text, nullable=False)
    category = Column(String(32), nullable=False)
    description = Column(Text, nullable=False)
    reporter_id = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = Column(String(32), default="open", nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (Index("idx_media_issue_tmdb", "media_type", "tmdb_id"),)


class UserMediaListItem(Base):
    """Favorite or watchlist entry."""

    __tablename__ = "user_media_list"

    user_id = Column(Integer, ForeignKey("app_user.id", ondelete="CASCADE"), primary_key=True)
    list_type = Column(
        Enum(*MEDIA_LIST_TYPES, name="media_list_type_enum", native_enum=False, create_constraint=True),
        primary_key=True,
    )
    media_type = Column(_media_type_enum("media_list_media_type_enum"), primary_key=True)
    tmdb_id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_user_media_list_user", "user_id", "list_type", "created_at"),)


class RecentlyViewed(Base):
    __tablename__ = "recently_viewed"

    user_id = Column(Integer, ForeignKey("app_user.id", ondelete="CASCADE"), primary_key=True)
    media_type = Column(_media_type_enum("recently_viewed_media_type_enum"), primary_key=True)
    tmdb_id = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False)
    poster_path = Column(Text, nullable=True)
    last_viewed_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_recently_viewed_user_time", "user_id", "last_viewed_at"),)


class DashboardSlider(Base):
    """
    One row of a user's dashboard layout.

    Built-in sliders may only be toggled and reordered; custom sliders carry
    their own type, title and data.
    """

    __tablename__ = "user_dashboard_slider"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
    )
    type = Column(Integer, nullable=False)
    title = Column(Text, nullable=True)
    data = Column(Text, nullable=True)
    enabled = Column(Boolean, default=True, nullable=False)
    order_index = Column(Integer, default=0, nullable=False)
    is_builtin = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (Index("idx_user_dashboard_slider_user_order", "user_id", "order_index"),)

    def __repr__(self) -> str:
        return f"<DashboardSlider(id={self.id}, user_id={self.user_id}, type={self.type})>"


class UpgradeFinderHint(Base):
    __tablename__ = "upgrade_finder_hint"

    media_type = Column(_media_type_enum("upgrade_hint_media_type_enum"), primary_key=True)
    media_id = Column(Integer, primary_key=True)
    status = Column(
        Enum("available", "none", "error", name="upgrade_hint_status_enum", native_enum=False, create_constraint=True),
        nullable=False,
    )
    hint_text = Column(Text, nullable=True)
    checked_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class UpgradeFinderOverride(Base):
    __tablename__ = "upgrade_finder_override"

    media_type = Column(_media_type_enum("upgrade_override_media_type_enum"), primary_key=True)
    media_id = Column(Integer, primary_key=True)
    ignore_4k = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False, index=True)
