"""
Unit tests for request analytics.
"""

from datetime import datetime, timedelta

import pytest

from requestarr.models import MediaRequest
from requestarr.services import RequestAnalyticsService

NOW = datetime(2024, 6, 15, 12, 0)


def _request(db, request_store, user_id, request_type, tmdb_id, status, age):
    request_id = request_store.create_request(request_type, tmdb_id, f"Title {tmdb_id}", user_id, status=status)
    with db.transaction() as session:
        session.query(MediaRequest).filter(MediaRequest.id == request_id).update(
            {MediaRequest.created_at: NOW - age}
        )
    return request_id


@pytest.fixture
def analytics(db) -> RequestAnalyticsService:
    return RequestAnalyticsService(db, clock=lambda: NOW)


@pytest.fixture
def seeded(db, request_store, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    _request(db, request_store, alice, "movie", 1, "submitted", timedelta(hours=2))
    _request(db, request_store, alice, "movie", 2, "available", timedelta(hours=4))
    _request(db, request_store, alice, "episode", 3, "pending", timedelta(days=1))
    _request(db, request_store, bob, "movie", 4, "denied", timedelta(days=40))
    _request(db, request_store, bob, "episode", 5, "queued", timedelta(hours=1))


class TestRequestAnalytics:
    """Test aggregate request analytics."""

    def test_empty_database(self, analytics):
        result = analytics.get_request_analytics()

        assert result["total_requests"] == 0
        assert result["avg_approval_time_hours"] == 0.0
        assert result["top_requesters"] == []
        assert result["requests_by_day"] == []

    def test_totals(self, analytics, seeded):
        result = analytics.get_request_analytics()

        assert result["total_requests"] == 5
        assert result["movie_requests"] == 3
        assert result["tv_requests"] == 2
        assert result["pending_requests"] == 2
        assert result["approved_requests"] == 2
        assert result["denied_requests"] == 1

    def test_average_age_of_approved_requests(self, analytics, seeded):
        """Test that the average uses the pinned clock."""
        assert analytics.get_request_analytics()["avg_approval_time_hours"] == pytest.approx(3.0)

    def test_top_requesters(self, analytics, seeded):
        assert analytics.get_request_analytics()["top_requesters"] == [
            {"username": "alice", "count": 3},
            {"username": "bob", "count": 2},
        ]

    def test_requests_by_day_covers_last_30_days(self, analytics, seeded):
        assert analytics.get_request_analytics()["requests_by_day"] == [
            {"date": "2024-06-14", "count": 1},
            {"date": "2024-06-15", "count": 3},
        ]

    def test_requests_by_status(self, analytics, seeded):
        by_status = analytics.get_request_analytics()["requests_by_status"]

        assert [row["status"] for row in by_status] == ["available", "denied", "pending", "queued", "submitted"]
        assert all(row["count"] == 1 for row in by_status)

    def test_date_window(self, analytics, seeded):
        result = analytics.get_request_analytics(start_date=NOW - timedelta(days=7), end_date=NOW)

        assert result["total_requests"] == 4
        assert result["denied_requests"] == 0
        assert {"username": "bob", "count": 1} in result["top_requesters"]
