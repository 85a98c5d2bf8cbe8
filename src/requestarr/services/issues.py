"""
Media issue reports.

Users report playback or quality problems against a movie or show; admins
resolve or delete them.
"""

from typing import Any

import structlog
from sqlalchemy import case, func

from requestarr.database import DatabaseContext
from requestarr.models import MediaIssue, User
from requestarr.models.media import MediaType

logger = structlog.get_logger()

DEFAULT_ISSUE_LIST_LIMIT = 200


def _issue_dict(issue: MediaIssue, reporter_username: str | None = None) -> dict[str, Any]:
    return {
        "id": issue.id,
        "media_type": issue.media_type,
        "tmdb_id": issue.tmdb_id,
        "title": issue.title,
        "category": issue.category,
        "description": issue.description,
        "reporter_id": issue.reporter_id,
        "status": issue.status,
        "created_at": issue.created_at,
        "reporter_username": reporter_username,
    }


class MediaIssueStore:
    """Store for reported media issues."""

    def __init__(self, db: DatabaseContext):
        self.db = db

    def create_issue(
        self,
        media_type: MediaType,
        tmdb_id: int,
        title: str,
        category: str,
        description: str,
        reporter_id: int,
    ) -> dict[str, Any]:
        with self.db.transaction() as session:
            issue = MediaIssue(
                media_type=media_type,
                tmdb_id=tmdb_id,
                title=title,
                category=category,
                description=description,
                reporter_id=reporter_id,
            )
            session.add(issue)
            session.flush()
            result = _issue_dict(issue)

        logger.info("media_issue_reported", issue_id=result["id"], media_type=media_type, tmdb_id=tmdb_id)
        return result

    def count_open_by_tmdb(self, media_type: MediaType, tmdb_id: int) -> int:
        """Issues reported against a title (every status counts)."""
        with self.db.session() as session:
            return (
                session.query(func.count(MediaIssue.id))
                .filter(MediaIssue.media_type == media_type, MediaIssue.tmdb_id == tmdb_id)
                .scalar()
            )

    def list_issues(self, limit: int = DEFAULT_ISSUE_LIST_LIMIT) -> list[dict[str, Any]]:
        """Newest issues first, with the reporter's username."""
        with self.db.session() as session:
            rows = (
                session.query(MediaIssue, User.username)
                .join(User, User.id == MediaIssue.reporter_id)
                .order_by(MediaIssue.created_at.desc())
                .limit(limit)
                .all()
            )
        return [_issue_dict(issue, username) for issue, username in rows]

    def get_issue_counts(self) -> dict[str, int]:
        """
        Totals for the issues dashboard.

        ``closed`` counts resolved issues; categories are matched
        case-insensitively and ``subtitles`` accepts the singular spelling.
        """
        category = func.lower(MediaIssue.category)
        with self.db.session() as session:
            row = session.query(
                func.count(MediaIssue.id).label("total"),
                func.count(case((MediaIssue.status == "open", 1))).label("open"),
                func.count(case((MediaIssue.status == "resolved", 1))).label("closed"),
                func.count(case((category == "video", 1))).label("video"),
                func.count(case((category == "audio", 1))).label("audio"),
                func.count(case((category.in_(("subtitle", "subtitles")), 1))).label("subtitles"),
                func.count(case((category == "other", 1))).label("others"),
            ).one()
        return {key: int(value or 0) for key, value in row._asdict().items()}

    def get_issue(self, issue_id: str) -> dict[str, Any] | None:
        with self.db.session() as session:
            row = (
                session.query(MediaIssue, User.username)
                .join(User, User.id == MediaIssue.reporter_id)
                .filter(MediaIssue.id == issue_id)
                .first()
            )
        if row is None:
            return None
        issue, username = row
        return _issue_dict(issue, username)

    def update_status(self, issue_id: str, status: str) -> dict[str, Any] | None:
        """Set an issue's status and return the updated issue (None if missing)."""
        with self.db.transaction() as session:
            updated = (
                session.query(MediaIssue)
                .filter(MediaIssue.id == issue_id)
                .update({MediaIssue.status: status}, synchronize_session=False)
            )
        if not updated:
            return None

        logger.info("media_issue_status_updated", issue_id=issue_id, status=status)
        return self.get_issue(issue_id)

    def delete_issue(self, issue_id: str) -> bool:
        with self.db.transaction() as session:
            deleted = session.query(MediaIssue).filter(MediaIssue.id == issue_id).delete(synchronize_session=False)
        return deleted > 0
