"""
Unit tests for calendar preferences, feed tokens and release subscriptions.
"""

from datetime import date

import pytest

from requestarr.models.calendar import DEFAULT_CALENDAR_FILTERS
from requestarr.services import CalendarStore


@pytest.fixture
def calendar(db) -> CalendarStore:
    return CalendarStore(db)


class TestPreferences:
    """Test partial preference updates."""

    def test_no_preferences_until_saved(self, calendar, make_user):
        assert calendar.get_preferences(make_user()) is None

    def test_first_save_fills_defaults(self, calendar, make_user):
        user_id = make_user()

        calendar.set_preferences(user_id, default_view="week")

        prefs = calendar.get_preferences(user_id)
        assert prefs["default_view"] == "week"
        assert prefs["filters"] == DEFAULT_CALENDAR_FILTERS
        assert prefs["genre_filters"] == []
        assert prefs["monitored_only"] is False

    def test_partial_update_keeps_other_fields(self, calendar, make_user):
        """Test that fields left as None keep their stored values."""
        user_id = make_user()
        calendar.set_preferences(user_id, default_view="agenda", genre_filters=[18, 35])

        calendar.set_preferences(user_id, monitored_only=True)

        prefs = calendar.get_preferences(user_id)
        assert prefs["default_view"] == "agenda"
        assert prefs["genre_filters"] == [18, 35]
        assert prefs["monitored_only"] is True


class TestFeedToken:
    """Test the iCal feed token."""

    def test_token_created_once(self, calendar, make_user):
        user_id = make_user()

        token = calendar.get_feed_token(user_id)

        assert token
        assert calendar.get_feed_token(user_id) == token

    def test_rotate_invalidates_old_token(self, calendar, make_user):
        user_id = make_user("alice")
        old = calendar.get_feed_token(user_id)

        new = calendar.rotate_feed_token(user_id)

        assert new != old
        assert calendar.get_feed_user_by_token(old) is None
        assert calendar.get_feed_user_by_token(new) == {"id": user_id, "username": "alice"}

    def test_rotate_without_existing_token(self, calendar, make_user):
        user_id = make_user()

        token = calendar.rotate_feed_token(user_id)

        assert calendar.get_feed_token(user_id) == token


class TestSubscriptions:
    """Test release subscriptions."""

    def test_movie_subscription_deduplicated(self, calendar, make_user):
        """Test that NULL season/episode coordinates still match an existing row."""
        user_id = make_user()

        first = calendar.add_subscription(user_id, "movie_release", 348, "Alien")
        second = calendar.add_subscription(user_id, "movie_release", 348, "Alien", air_date=date(2024, 8, 16))

        assert second["id"] == first["id"]
        assert len(calendar.list_subscriptions(user_id)) == 1
        assert second["air_date"] == date(2024, 8, 16)

    def test_resubscribe_reenables_notification(self, calendar, make_user):
        user_id = make_user()
        created = calendar.add_subscription(user_id, "tv_episode", 1399, "GoT", season_number=8, episode_number=6)
        calendar.disable_notifications(created["id"])
        assert calendar.list_active_subscriptions() == []

        again = calendar.add_subscription(user_id, "tv_episode", 1399, "GoT", season_number=8, episode_number=6)

        assert again["id"] == created["id"]
        assert again["notify_on_available"] is True

    def test_distinct_episodes_are_separate(self, calendar, make_user):
        user_id = make_user()
        calendar.add_subscription(user_id, "tv_episode", 1399, "GoT", season_number=8, episode_number=5)
        calendar.add_subscription(user_id, "tv_episode", 1399, "GoT", season_number=8, episode_number=6)
        calendar.add_subscription(user_id, "season_premiere", 1399, "GoT", season_number=8)

        assert len(calendar.list_subscriptions(user_id)) == 3

    def test_remove_checks_owner(self, calendar, make_user):
        user_id = make_user()
        created = calendar.add_subscription(user_id, "movie_release", 348, "Alien")

        assert calendar.remove_subscription(created["id"], make_user()) is False
        assert calendar.remove_subscription(created["id"], user_id) is True
