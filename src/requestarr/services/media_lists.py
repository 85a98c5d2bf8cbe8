"""Favorites and watchlists."""

from typing import Any

from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import UserMediaListItem
from requestarr.models.media import MediaListType, MediaType

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


def clamp_list_limit(limit: int | None) -> int:
    """Clamp a requested page size to 1..200 (None gives the default)."""
    if limit is None:
        return DEFAULT_LIST_LIMIT
    return min(max(limit, 1), MAX_LIST_LIMIT)


class MediaListStore:
    def __init__(self, db: DatabaseContext):
        self.db = db

    def add(self, user_id: int, list_type: MediaListType, media_type: MediaType, tmdb_id: int) -> None:
        """Add an entry; adding it again is a no-op."""
        stmt = (
            dialect_insert(self.db.dialect_name, UserMediaListItem)
            .values(
                user_id=user_id,
                list_type=list_type,
                media_type=media_type,
                tmdb_id=tmdb_id,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing()
        )
        with self.db.transaction() as session:
            session.execute(stmt)

    def remove(self, user_id: int, list_type: MediaListType, media_type: MediaType, tmdb_id: int) -> bool:
        with self.db.transaction() as session:
            deleted = (
                session.query(UserMediaListItem)
                .filter(
                    UserMediaListItem.user_id == user_id,
                    UserMediaListItem.list_type == list_type,
                    UserMediaListItem.media_type == media_type,
                    UserMediaListItem.tmdb_id == tmdb_id,
                )
                .delete(synchronize_session=False)
            )
        return deleted > 0

    def list_items(self, user_id: int, list_type: MediaListType, limit: int | None = None) -> list[dict[str, Any]]:
        """Entries of one list, newest first."""
        with self.db.session() as session:
            rows = (
                session.query(UserMediaListItem)
                .filter(UserMediaListItem.user_id == user_id, UserMediaListItem.list_type == list_type)
                .order_by(UserMediaListItem.created_at.desc())
                .limit(clamp_list_limit(limit))
                .all()
            )
        return [
            {
                "user_id": row.user_id,
                "list_type": row.list_type,
                "media_type": row.media_type,
                "tmdb_id": row.tmdb_id,
                "created_at": row.created_at,
            }
            for row in rows
        ]

    def status(self, user_id: int, media_type: MediaType, tmdb_id: int) -> dict[str, bool]:
        """Which of the user's lists contain a title."""
        with self.db.session() as session:
            list_types = {
                row.list_type
                for row in session.query(UserMediaListItem.list_type).filter(
                    UserMediaListItem.user_id == user_id,
                    UserMediaListItem.media_type == media_type,
                    UserMediaListItem.tmdb_id == tmdb_id,
                )
            }
        return {"favorite": "favorite" in list_types, "watchlist": "watchlist" in list_types}
