"""
MediaRequest, RequestItem and RequestComment database models.

A MediaRequest is the central aggregate of the request lifecycle. Its
RequestItems point at the provider units of work (a Radarr movie or a Sonarr
episode). Uniqueness of active requests is enforced by partial unique indexes
built from ACTIVE_REQUEST_STATUSES:

- at most one active movie request per tmdb_id
- at most one active item per (show tmdb_id, season, episode)
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
    and_,
)
from sqlalchemy.orm import relationship

from requestarr.database import Base, utcnow

RequestType = Literal["movie", "episode"]

RequestStatus = Literal[
    "queued",
    "pending",
    "submitted",
    "downloading",
    "available",
    "partially_available",
    "denied",
    "failed",
    "removed",
]

Provider = Literal["sonarr", "radarr"]

REQUEST_STATUSES: tuple[str, ...] = (
    "queued",
    "pending",
    "submitted",
    "downloading",
    "available",
    "partially_available",
    "denied",
    "failed",
    "removed",
)

# Statuses that block a second request for the same media
ACTIVE_REQUEST_STATUSES: tuple[str, ...] = ("queued", "pending", "submitted")

# Statuses the reconciliation job keeps polling the providers for
SYNC_REQUEST_STATUSES: tuple[str, ...] = (
    "submitted",
    "downloading",
    "available",
    "partially_available",
    "removed",
)


def _uuid() -> str:
    return str(uuid.uuid4())


class MediaRequest(Base):
    """
    Media request model.

    Tracks a user's request for a movie or a set of episodes with:
    - Denormalized display metadata cached at creation
    - Status advanced by the fulfillment reconciliation job
    - Child items, one per provider unit of work
    """

    __tablename__ = "media_request"

    # Primary key
    id = Column(String(36), primary_key=True, default=_uuid)

    # What was requested
    request_type = Column(
        Enum("movie", "episode", name="request_type_enum", native_enum=False, create_constraint=True),
        nullable=False,
        comment="movie or episode",
    )
    tmdb_id = Column(
        Integer,
        nullable=False,
        index=True,
        comment="TMDB id of the movie or show",
    )
    title = Column(Text, nullable=False, index=True)
    poster_path = Column(Text, nullable=True)
    backdrop_path = Column(Text, nullable=True)
    release_year = Column(Integer, nullable=True)

    # Ownership
    requested_by = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="User who made the request",
    )

    # Lifecycle
    status = Column(
        String(32),
        default="queued",
        nullable=False,
        index=True,
        comment="Fulfillment status",
    )
    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
        comment="Request creation timestamp",
    )

    # Relationships
    items = relationship(
        "RequestItem",
        back_populates="request",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RequestItem.id",
    )

    def __repr__(self) -> str:
        """String representation of MediaRequest."""
        return (
            f"<MediaRequest(id='{self.id}', type='{self.request_type}', "
            f"tmdb_id={self.tmdb_id}, status='{self.status}')>"
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_REQUEST_STATUSES


class RequestItem(Base):
    """
    Provider line item belonging to a MediaRequest.

    Movie requests carry a single Radarr item without season/episode; episode
    requests carry one Sonarr item per (season, episode). Item status may trail
    the parent's because episodes can fail independently.
    """

    __tablename__ = "request_item"

    id = Column(Integer, primary_key=True)
    request_id = Column(
        String(36),
        ForeignKey("media_request.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tmdb_id = Column(
        Integer,
        nullable=False,
        comment="Copy of the parent request's tmdb_id",
    )
    provider = Column(
        Enum("sonarr", "radarr", name="request_provider_enum", native_enum=False, create_constraint=True),
        nullable=False,
    )
    provider_id = Column(
        Integer,
        nullable=True,
        comment="External series/movie id, set once submitted",
    )
    season = Column(Integer, nullable=True)
    episode = Column(Integer, nullable=True)
    status = Column(String(32), default="queued", nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    request = relationship("MediaRequest", back_populates="items")

    def __repr__(self) -> str:
        return (
            f"<RequestItem(id={self.id}, request_id='{self.request_id}', "
            f"S{self.season}E{self.episode}, status='{self.status}')>"
        )


Index(
    "uq_media_request_active_movie",
    MediaRequest.request_type,
    MediaRequest.tmdb_id,
    unique=True,
    postgresql_where=and_(
        MediaRequest.request_type == "movie",
        MediaRequest.status.in_(ACTIVE_REQUEST_STATUSES),
    ),
    sqlite_where=and_(
        MediaRequest.request_type == "movie",
        MediaRequest.status.in_(ACTIVE_REQUEST_STATUSES),
    ),
)

Index(
    "uq_request_item_active_episode",
    RequestItem.tmdb_id,
    RequestItem.season,
    RequestItem.episode,
    unique=True,
    postgresql_where=and_(
        RequestItem.season.isnot(None),
        RequestItem.episode.isnot(None),
        RequestItem.status.in_(ACTIVE_REQUEST_STATUSES),
    ),
    sqlite_where=and_(
        RequestItem.season.isnot(None),
        RequestItem.episode.isnot(None),
        RequestItem.status.in_(ACTIVE_REQUEST_STATUSES),
    ),
)

Index("idx_media_request_type_status", MediaRequest.request_type, MediaRequest.status)
Index("idx_media_request_user_status", MediaRequest.requested_by, MediaRequest.status)
Index("idx_request_item_provider_id", RequestItem.provider, RequestItem.provider_id)


class RequestComment(Base):
    """Comment thread entry on a request, from its owner or an admin."""

    __tablename__ = "request_comment"

    id = Column(Integer, primary_key=True)
    request_id = Column(
        String(36),
        ForeignKey("media_request.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    comment = Column(Text, nullable=False)
    is_admin_comment = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
