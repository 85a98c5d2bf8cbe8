"""
Request analytics for the admin dashboard.

Aggregates media requests over an optional creation-date window into totals,
top requesters, a 30-day daily histogram and a status breakdown.
"""

from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import case, func

from requestarr.database import DatabaseContext, utcnow
from requestarr.models import MediaRequest, User

logger = structlog.get_logger()

PENDING_STATUSES = ("pending", "queued")
APPROVED_STATUSES = ("submitted", "available")
TOP_REQUESTERS_LIMIT = 10
REQUESTS_BY_DAY_WINDOW = timedelta(days=30)


def _day_key(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)


class RequestAnalyticsService:
    """Read-only aggregate queries over media requests."""

    def __init__(self, db: DatabaseContext, clock: Callable[[], datetime] = utcnow):
        """
        Initialize analytics service.

        Args:
            db: Database context
            clock: Source of "now" (naive UTC); tests pin it for determinism
        """
        self.db = db
        self.clock = clock

    def get_request_analytics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Compute request analytics.

        Args:
            start_date: Inclusive lower bound on created_at
            end_date: Inclusive upper bound on created_at

        Returns:
            dict: total_requests, movie_requests, tv_requests, pending_requests,
            approved_requests, denied_requests, avg_approval_time_hours,
            top_requesters, requests_by_day, requests_by_status

        Note:
            avg_approval_time_hours is the mean age (now minus created_at) of
            submitted/available requests. No approval timestamp is stored, so
            this grows with time rather than measuring time-to-approval.
        """
        now = self.clock()

        window = []
        if start_date is not None:
            window.append(MediaRequest.created_at >= start_date)
        if end_date is not None:
            window.append(MediaRequest.created_at <= end_date)

        with self.db.session() as session:
            totals = (
                session.query(
                    func.count(MediaRequest.id).label("total"),
                    func.count(case((MediaRequest.request_type == "movie", 1))).label("movies"),
                    func.count(case((MediaRequest.request_type == "episode", 1))).label("tv"),
                    func.count(case((MediaRequest.status.in_(PENDING_STATUSES), 1))).label("pending"),
                    func.count(case((MediaRequest.status.in_(APPROVED_STATUSES), 1))).label("approved"),
                    func.count(case((MediaRequest.status == "denied", 1))).label("denied"),
                )
                .filter(*window)
                .one()
            )

            request_count = func.count(MediaRequest.id).label("count")
            top_requesters = (
                session.query(User.username, request_count)
                .join(User, User.id == MediaRequest.requested_by)
                .filter(*window)
                .group_by(User.username)
                .order_by(request_count.desc(), User.username)
                .limit(TOP_REQUESTERS_LIMIT)
                .all()
            )

            day = func.date(MediaRequest.created_at).label("day")
            by_day = (
                session.query(day, func.count(MediaRequest.id))
                .filter(MediaRequest.created_at >= now - REQUESTS_BY_DAY_WINDOW)
                .group_by(day)
                .order_by(day)
                .all()
            )

            status_count = func.count(MediaRequest.id).label("count")
            by_status = (
                session.query(MediaRequest.status, status_count)
                .filter(*window)
                .group_by(MediaRequest.status)
                .order_by(status_count.desc(), MediaRequest.status)
                .all()
            )

            approved_created = [
                row.created_at
                for row in session.query(MediaRequest.created_at).filter(
                    MediaRequest.status.in_(APPROVED_STATUSES), *window
                )
            ]

        avg_hours = 0.0
        if approved_created:
            total_seconds = sum((now - created).total_seconds() for created in approved_created)
            avg_hours = total_seconds / len(approved_created) / 3600

        logger.debug("request_analytics_computed", total=totals.total)

        return {
            "total_requests": totals.total,
            "movie_requests": totals.movies,
            "tv_requests": totals.tv,
            "pending_requests": totals.pending,
            "approved_requests": totals.approved,
            "denied_requests": totals.denied,
            "avg_approval_time_hours": avg_hours,
            "top_requesters": [{"username": username, "count": count} for username, count in top_requesters],
            "requests_by_day": [{"date": _day_key(d), "count": count} for d, count in by_day],
            "requests_by_status": [{"status": status, "count": count} for status, count in by_status],
        }
