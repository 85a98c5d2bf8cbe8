"""
Jellyfin availability cache and library scan log models.

The availability table mirrors what the last Jellyfin library scans found,
keyed by the Jellyfin item id, so request pages can answer "is this already
available" without calling Jellyfin.
"""

from typing import Literal

from sqlalchemy import Column, Date, DateTime, Enum, Index, Integer, String, Text

from requestarr.database import Base, utcnow

JellyfinMediaType = Literal["movie", "series", "season", "episode"]
ScanStatus = Literal["running", "completed", "failed"]


class JellyfinAvailability(Base):
    """Cached Jellyfin library item."""

    __tablename__ = "jellyfin_availability"

    id = Column(Integer, primary_key=True)
    tmdb_id = Column(Integer, nullable=True, index=True)
    tvdb_id = Column(Integer, nullable=True, index=True)
    imdb_id = Column(String(32), nullable=True)
    media_type = Column(
        Enum("movie", "series", "season", "episode", name="jellyfin_media_type_enum", native_enum=False, create_constraint=True),
        nullable=False,
    )
    jellyfin_item_id = Column(
        String(64),
        unique=True,
        nullable=False,
        comment="Jellyfin item id; the upsert conflict target",
    )
    jellyfin_library_id = Column(String(64), nullable=True)
    title = Column(Text, nullable=True)
    season_number = Column(Integer, nullable=True)
    episode_number = Column(Integer, nullable=True)
    air_date = Column(Date, nullable=True)
    last_scanned_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (Index("idx_jellyfin_availability_type_tmdb", "media_type", "tmdb_id"),)

    def __repr__(self) -> str:
        return f"<JellyfinAvailability(item='{self.jellyfin_item_id}', type='{self.media_type}', tmdb_id={self.tmdb_id})>"


class JellyfinScanLog(Base):
    __tablename__ = "jellyfin_scan_log"

    id = Column(Integer, primary_key=True)
    library_id = Column(String(64), nullable=True)
    library_name = Column(Text, nullable=True)
    items_scanned = Column(Integer, default=0, nullable=False)
    items_added = Column(Integer, default=0, nullable=False)
    items_removed = Column(Integer, default=0, nullable=False)
    scan_started_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    scan_completed_at = Column(DateTime, nullable=True)
    status = Column(
        Enum("running", "completed", "failed", name="jellyfin_scan_status_enum", native_enum=False, create_constraint=True),
        default="running",
        nullable=False,
    )
    error_message = Column(Text, nullable=True)
