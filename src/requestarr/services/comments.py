"""Comment threads on media requests."""

from typing import Any

import structlog
from sqlalchemy import func

from requestarr.database import DatabaseContext
from requestarr.models import RequestComment, User

logger = structlog.get_logger()


class RequestCommentStore:
    def __init__(self, db: DatabaseContext):
        self.db = db

    def add_comment(self, request_id: str, user_id: int, comment: str, is_admin_comment: bool = False) -> dict[str, Any]:
        """
        Append a comment to a request's thread.

        Returns:
            dict: ``{id, created_at}`` of the new comment
        """
        with self.db.transaction() as session:
            row = RequestComment(
                request_id=request_id,
                user_id=user_id,
                comment=comment,
                is_admin_comment=is_admin_comment,
            )
            session.add(row)
            session.flush()
            result = {"id": row.id, "created_at": row.created_at}

        logger.info("request_comment_added", request_id=request_id, user_id=user_id, admin=is_admin_comment)
        return result

    def list_comments(self, request_id: str) -> list[dict[str, Any]]:
        """Comments on a request, oldest first, with their author."""
        with self.db.session() as session:
            rows = (
                session.query(RequestComment, User)
                .join(User, User.id == RequestComment.user_id)
                .filter(RequestComment.request_id == request_id)
                .order_by(RequestComment.created_at.asc(), RequestComment.id.asc())
                .all()
            )

        return [
            {
                "id": comment.id,
                "request_id": comment.request_id,
                "comment": comment.comment,
                "is_admin_comment": comment.is_admin_comment,
                "created_at": comment.created_at,
                "user": {
                    "id": user.id,
                    "username": user.username,
                    "avatar_url": user.avatar_url,
                    "groups": sorted(user.groups),
                },
            }
            for comment, user in rows
        ]

    def count_comments(self, request_id: str) -> int:
        with self.db.session() as session:
            return (
                session.query(func.count(RequestComment.id))
                .filter(RequestComment.request_id == request_id)
                .scalar()
            )
