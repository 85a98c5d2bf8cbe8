"""
Jellyfin availability cache for Requestarr.

The jellyfin-availability-sync job upserts every library item it sees and
records one scan log row per library scan. Lookups match shows by TMDB id or,
when known, TVDB id.
"""

from datetime import date, datetime, timedelta
from typing import Any, Literal

import structlog
from sqlalchemy import func, literal_column, or_

from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import JellyfinAvailability, JellyfinScanLog
from requestarr.models.jellyfin import JellyfinMediaType, ScanStatus

logger = structlog.get_logger()

DEFAULT_STALE_DAYS = 30
_UNSET: Any = object()


def _matches_show(tmdb_id: int, tvdb_id: int | None):
    if tvdb_id is None:
        return JellyfinAvailability.tmdb_id == tmdb_id
    return or_(JellyfinAvailability.tmdb_id == tmdb_id, JellyfinAvailability.tvdb_id == tvdb_id)


class JellyfinAvailabilityStore:
    """Store for the Jellyfin item cache and scan log."""

    def __init__(self, db: DatabaseContext):
        self.db = db

    def upsert_item(
        self,
        jellyfin_item_id: str,
        media_type: JellyfinMediaType,
        tmdb_id: int | None = None,
        tvdb_id: int | None = None,
        imdb_id: str | None = None,
        title: str | None = None,
        season_number: int | None = None,
        episode_number: int | None = None,
        air_date: date | None = None,
        jellyfin_library_id: str | None = None,
    ) -> dict[str, bool]:
        """
        Insert or refresh a scanned item.

        On refresh, external ids, title and air date only overwrite stored
        values when given, and last_scanned_at is bumped.

        Returns:
            dict: ``{"is_new": True}`` if the item was not cached before
        """
        now = utcnow()
        stmt = dialect_insert(self.db.dialect_name, JellyfinAvailability).values(
            tmdb_id=tmdb_id,
            tvdb_id=tvdb_id,
            imdb_id=imdb_id,
            media_type=media_type,
            title=title,
            season_number=season_number,
            episode_number=episode_number,
            air_date=air_date,
            jellyfin_item_id=jellyfin_item_id,
            jellyfin_library_id=jellyfin_library_id,
            last_scanned_at=now,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["jellyfin_item_id"],
            set_={
                "last_scanned_at": now,
                "title": func.coalesce(stmt.excluded.title, JellyfinAvailability.title),
                "tmdb_id": func.coalesce(stmt.excluded.tmdb_id, JellyfinAvailability.tmdb_id),
                "tvdb_id": func.coalesce(stmt.excluded.tvdb_id, JellyfinAvailability.tvdb_id),
                "imdb_id": func.coalesce(stmt.excluded.imdb_id, JellyfinAvailability.imdb_id),
                "air_date": func.coalesce(stmt.excluded.air_date, JellyfinAvailability.air_date),
            },
        )

        with self.db.transaction() as session:
            if self.db.dialect_name == "postgresql":
                # xmax is 0 only for a row version created by this INSERT
                is_new = session.execute(stmt.returning(literal_column("(xmax = 0)"))).scalar_one()
            else:
                existing = (
                    session.query(JellyfinAvailability.id)
                    .filter(JellyfinAvailability.jellyfin_item_id == jellyfin_item_id)
                    .first()
                )
                session.execute(stmt)
                is_new = existing is None

        return {"is_new": bool(is_new)}

    def has_cached_episode_availability(self, tmdb_id: int, tvdb_id: int | None = None) -> bool:
        """Whether any episode of the show is in the cache."""
        with self.db.session() as session:
            found = (
                session.query(JellyfinAvailability.id)
                .filter(JellyfinAvailability.media_type == "episode", _matches_show(tmdb_id, tvdb_id))
                .first()
            )
        return found is not None

    def get_available_seasons(self, tmdb_id: int, tvdb_id: int | None = None) -> list[int]:
        """Season numbers with at least one cached episode, ascending."""
        with self.db.session() as session:
            rows = (
                session.query(JellyfinAvailability.season_number)
                .filter(
                    JellyfinAvailability.media_type == "episode",
                    JellyfinAvailability.season_number.isnot(None),
                    _matches_show(tmdb_id, tvdb_id),
                )
                .distinct()
                .order_by(JellyfinAvailability.season_number)
                .all()
            )
        return [row.season_number for row in rows]

    def get_cached_series_item_id(self, tmdb_id: int, tvdb_id: int | None = None) -> str | None:
        with self.db.session() as session:
            return (
                session.query(JellyfinAvailability.jellyfin_item_id)
                .filter(JellyfinAvailability.media_type == "series", _matches_show(tmdb_id, tvdb_id))
                .order_by(JellyfinAvailability.last_scanned_at.desc())
                .limit(1)
                .scalar()
            )

    def list_new_items(self, since: datetime | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """Items first cached after ``since`` (or all), newest first."""
        with self.db.session() as session:
            query = session.query(JellyfinAvailability)
            if since is not None:
                query = query.filter(JellyfinAvailability.created_at > since)
            rows = query.order_by(JellyfinAvailability.created_at.desc()).limit(limit).all()

        return [
            {
                "jellyfin_item_id": row.jellyfin_item_id,
                "title": row.title,
                "media_type": row.media_type,
                "tmdb_id": row.tmdb_id,
                "added_at": row.created_at,
            }
            for row in rows
        ]

    def cleanup_stale_items(self, days: int = DEFAULT_STALE_DAYS) -> int:
        """
        Delete items no scan has seen for ``days`` days.

        Returns:
            int: Number of items removed
        """
        cutoff = utcnow() - timedelta(days=days)
        with self.db.transaction() as session:
            deleted = (
                session.query(JellyfinAvailability)
                .filter(JellyfinAvailability.last_scanned_at < cutoff)
                .delete(synchronize_session=False)
            )

        logger.info("jellyfin_stale_items_removed", count=deleted, days=days)
        return deleted

    # ------------------------------------------------------------------
    # Scan log
    # ------------------------------------------------------------------

    def start_scan(self, library_id: str | None = None, library_name: str | None = None) -> int:
        """Open a running scan log entry and return its id."""
        with self.db.transaction() as session:
            row = JellyfinScanLog(
                library_id=library_id,
                library_name=library_name,
                items_scanned=0,
                items_added=0,
                items_removed=0,
                scan_started_at=utcnow(),
                status="running",
            )
            session.add(row)
            session.flush()
            scan_id = row.id

        logger.info("jellyfin_scan_started", scan_id=scan_id, library_id=library_id)
        return scan_id

    def update_scan(
        self,
        scan_id: int,
        items_scanned: int | None = None,
        items_added: int | None = None,
        items_removed: int | None = None,
        status: ScanStatus | None = None,
        error_message: str | None = _UNSET,
    ) -> bool:
        """
        Update scan counters and status.

        Moving to ``completed`` or ``failed`` stamps scan_completed_at.
        """
        values: dict[Any, Any] = {}
        if items_scanned is not None:
            values[JellyfinScanLog.items_scanned] = items_scanned
        if items_added is not None:
            values[JellyfinScanLog.items_added] = items_added
        if items_removed is not None:
            values[JellyfinScanLog.items_removed] = items_removed
        if status is not None:
            values[JellyfinScanLog.status] = status
            if status in ("completed", "failed"):
                values[JellyfinScanLog.scan_completed_at] = utcnow()
        if error_message is not _UNSET:
            values[JellyfinScanLog.error_message] = error_message

        if not values:
            return False

        with self.db.transaction() as session:
            updated = (
                session.query(JellyfinScanLog)
                .filter(JellyfinScanLog.id == scan_id)
                .update(values, synchronize_session=False)
            )

        if status in ("completed", "failed"):
            log = logger.warning if status == "failed" else logger.info
            log("jellyfin_scan_finished", scan_id=scan_id, status=status)
        return updated > 0

    def list_recent_scans(self, limit: int = 10) -> list[dict[str, Any]]:
        with self.db.session() as session:
            rows = (
                session.query(JellyfinScanLog)
                .order_by(JellyfinScanLog.scan_started_at.desc(), JellyfinScanLog.id.desc())
                .limit(limit)
                .all()
            )
        return [
            {
                "id": row.id,
                "library_id": row.library_id,
                "library_name": row.library_name,
                "items_scanned": row.items_scanned,
                "items_added": row.items_added,
                "items_removed": row.items_removed,
                "scan_started_at": row.scan_started_at,
                "scan_completed_at": row.scan_completed_at,
                "status": row.status,
                "error_message": row.error_message,
            }
            for row in rows
        ]
