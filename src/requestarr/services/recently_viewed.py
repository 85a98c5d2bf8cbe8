"""Per-user history of opened movie and show pages."""

from typing import Any

from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import RecentlyViewed


class RecentlyViewedStore:
    def __init__(self, db: DatabaseContext):
        self.db = db

    def track(self, user_id: int, media_type: str, tmdb_id: int, title: str, poster_path: str | None = None) -> None:
        """Record a view, refreshing title, poster and timestamp of a repeat visit."""
        now = utcnow()
        stmt = dialect_insert(self.db.dialect_name, RecentlyViewed).values(
            user_id=user_id,
            media_type=media_type,
            tmdb_id=tmdb_id,
            title=title,
            poster_path=poster_path,
            last_viewed_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "media_type", "tmdb_id"],
            set_={
                "title": stmt.excluded.title,
                "poster_path": stmt.excluded.poster_path,
                "last_viewed_at": stmt.excluded.last_viewed_at,
            },
        )
        with self.db.transaction() as session:
            session.execute(stmt)

    def list_recent(self, user_id: int, limit: int = 20) -> list[dict[str, Any]]:
        """Most recently viewed first."""
        with self.db.session() as session:
            rows = (
                session.query(RecentlyViewed)
                .filter(RecentlyViewed.user_id == user_id)
                .order_by(RecentlyViewed.last_viewed_at.desc())
                .limit(limit)
                .all()
            )
        return [
            {
                "user_id": row.user_id,
                "media_type": row.media_type,
                "tmdb_id": row.tmdb_id,
                "title": row.title,
                "poster_path": row.poster_path,
                "last_viewed_at": row.last_viewed_at,
            }
            for row in rows
        ]

    def clear(self, user_id: int) -> int:
        with self.db.transaction() as session:
            return (
                session.query(RecentlyViewed)
                .filter(RecentlyViewed.user_id == user_id)
                .delete(synchronize_session=False)
            )
