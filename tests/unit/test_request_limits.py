"""
Unit tests for request quota resolution.
"""

from unittest.mock import MagicMock

import pytest

from requestarr.services.request_limits import RequestLimitService, normalize_days, normalize_limit


@pytest.fixture
def limits(settings_store, user_store, request_store) -> RequestLimitService:
    return RequestLimitService(settings_store, user_store, request_store)


class TestNormalization:
    """Test limit and window normalization."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, 0), (float("nan"), 0), (float("inf"), 0), (-3, 0), (2.9, 2), (5, 5)],
    )
    def test_normalize_limit(self, value, expected):
        assert normalize_limit(value) == expected

    @pytest.mark.parametrize(("value", "expected"), [(None, 7), (0, 1), (-2, 1), (3.5, 3), (30, 30)])
    def test_normalize_days(self, value, expected):
        assert normalize_days(value) == expected


class TestRequestLimitService:
    """Test effective limits and usage."""

    def test_defaults_when_unset(self, limits):
        """Test that unset settings give unlimited with a 7 day window."""
        defaults = limits.get_default_request_limits()

        assert defaults.movie.limit == 0
        assert defaults.movie.days == 7
        assert defaults.series.limit == 0

    def test_unparseable_setting_falls_back(self, limits, settings_store):
        """Test that a garbage stored limit is treated as unset."""
        settings_store.set_setting("request_limit_movie", "lots")

        assert limits.get_default_request_limits().movie.limit == 0

    def test_set_defaults_normalizes(self, limits):
        """Test that stored defaults are normalized."""
        result = limits.set_default_request_limits(movie_limit=-1, movie_days=0, series_limit=4, series_days=14)

        assert result.movie.limit == 0
        assert result.movie.days == 1
        assert result.series.limit == 4
        assert result.series.days == 14

    def test_user_override_wins(self, limits, user_store, make_user):
        """Test that a non-null user override replaces the default."""
        user_id = make_user()
        limits.set_default_request_limits(movie_limit=5, movie_days=7, series_limit=5, series_days=7)
        user_store.update_user_profile(user_id, request_limit_movie=2)

        effective = limits.get_effective_request_limits(user_id)

        assert effective.movie.limit == 2
        assert effective.series.limit == 5

    def test_unlimited_skips_usage_query(self, settings_store, user_store, make_user):
        """Test that a zero limit never consults the usage counter."""
        user_id = make_user()
        requests = MagicMock()
        service = RequestLimitService(settings_store, user_store, requests)

        status = service.get_user_request_limit_status(user_id, "movie")

        assert status.unlimited is True
        assert status.remaining is None
        requests.count_user_requests_since.assert_not_called()

    def test_limited_status_counts_usage(self, limits, request_store, make_user):
        """Test used and remaining for a limited user."""
        user_id = make_user()
        limits.set_default_request_limits(movie_limit=3, movie_days=7, series_limit=0, series_days=7)
        request_store.create_request("movie", 1, "A", user_id, status="available")

        status = limits.get_user_request_limit_status(user_id, "movie")

        assert status.unlimited is False
        assert status.used == 1
        assert status.remaining == 2

    def test_episode_uses_series_limit(self, settings_store, user_store, make_user):
        """Test that episode requests resolve the series quota."""
        user_id = make_user()
        requests = MagicMock()
        requests.count_user_requests_since.return_value = 4
        service = RequestLimitService(settings_store, user_store, requests)
        service.set_default_request_limits(movie_limit=0, movie_days=7, series_limit=3, series_days=7)

        status = service.get_user_request_limit_status(user_id, "episode")

        assert status.limit == 3
        assert status.remaining == 0
        requests.count_user_requests_since.assert_called_once()
