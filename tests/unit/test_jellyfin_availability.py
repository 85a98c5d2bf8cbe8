"""
Unit tests for the Jellyfin availability cache.
"""

from datetime import date, timedelta

import pytest

from requestarr.database import utcnow
from requestarr.models import JellyfinAvailability
from requestarr.services import JellyfinAvailabilityStore


@pytest.fixture
def availability(db) -> JellyfinAvailabilityStore:
    return JellyfinAvailabilityStore(db)


def _add_episode(store, item_id: str, season: int, episode: int = 1, tmdb_id: int = 100, tvdb_id=None):
    return store.upsert_item(
        item_id,
        "episode",
        tmdb_id=tmdb_id,
        tvdb_id=tvdb_id,
        season_number=season,
        episode_number=episode,
    )


class TestUpsertItem:
    """Test item upserts."""

    def test_first_sighting_is_new(self, availability):
        assert availability.upsert_item("jf-1", "movie", tmdb_id=10, title="Alien") == {"is_new": True}
        assert availability.upsert_item("jf-1", "movie", tmdb_id=10, title="Alien") == {"is_new": False}

    def test_refresh_keeps_values_not_given(self, db, availability):
        """Test that a refresh without ids or title keeps the stored ones."""
        availability.upsert_item("jf-1", "movie", tmdb_id=10, imdb_id="tt0078748", title="Alien", air_date=date(1979, 5, 25))

        availability.upsert_item("jf-1", "movie")

        with db.session() as session:
            row = session.query(JellyfinAvailability).filter(JellyfinAvailability.jellyfin_item_id == "jf-1").one()
        assert row.tmdb_id == 10
        assert row.imdb_id == "tt0078748"
        assert row.title == "Alien"
        assert row.air_date == date(1979, 5, 25)

    def test_refresh_overwrites_given_title(self, availability):
        availability.upsert_item("jf-1", "movie", tmdb_id=10, title="Alien")
        availability.upsert_item("jf-1", "movie", title="Alien (Director's Cut)")

        assert availability.list_new_items()[0]["title"] == "Alien (Director's Cut)"


class TestShowLookups:
    """Test episode and season lookups."""

    def test_available_seasons_ascending_and_distinct(self, availability):
        _add_episode(availability, "e-3", season=3)
        _add_episode(availability, "e-1", season=1)
        _add_episode(availability, "e-1b", season=1, episode=2)

        assert availability.get_available_seasons(100) == [1, 3]
        assert availability.has_cached_episode_availability(100) is True
        assert availability.has_cached_episode_availability(200) is False

    def test_tvdb_id_matches_when_tmdb_missing(self, availability):
        """Test that a show is found by TVDB id when the item has no TMDB id."""
        _add_episode(availability, "e-1", season=2, tmdb_id=None, tvdb_id=555)

        assert availability.get_available_seasons(100, tvdb_id=555) == [2]
        assert availability.get_available_seasons(100) == []

    def test_cached_series_item_id(self, availability):
        availability.upsert_item("series-1", "series", tmdb_id=100)
        _add_episode(availability, "e-1", season=1)

        assert availability.get_cached_series_item_id(100) == "series-1"
        assert availability.get_cached_series_item_id(200) is None


class TestCleanup:
    """Test stale item removal and new item listing."""

    def test_cleanup_removes_only_stale_items(self, db, availability):
        availability.upsert_item("old", "movie", tmdb_id=1)
        availability.upsert_item("fresh", "movie", tmdb_id=2)
        with db.transaction() as session:
            session.query(JellyfinAvailability).filter(JellyfinAvailability.jellyfin_item_id == "old").update(
                {JellyfinAvailability.last_scanned_at: utcnow() - timedelta(days=31)}
            )

        assert availability.cleanup_stale_items(days=30) == 1
        assert [item["jellyfin_item_id"] for item in availability.list_new_items()] == ["fresh"]

    def test_list_new_items_since(self, availability):
        availability.upsert_item("a", "movie", tmdb_id=1)
        cutoff = utcnow()
        availability.upsert_item("b", "movie", tmdb_id=2)

        assert [item["jellyfin_item_id"] for item in availability.list_new_items(since=cutoff)] == ["b"]


class TestScanLog:
    """Test scan log bookkeeping."""

    def test_scan_lifecycle(self, availability):
        scan_id = availability.start_scan("lib-1", "Movies")

        availability.update_scan(scan_id, items_scanned=10, items_added=2)
        availability.update_scan(scan_id, status="completed")

        scan = availability.list_recent_scans()[0]
        assert scan["status"] == "completed"
        assert scan["items_scanned"] == 10
        assert scan["items_added"] == 2
        assert scan["items_removed"] == 0
        assert scan["scan_completed_at"] is not None

    def test_failed_scan_records_error(self, availability):
        scan_id = availability.start_scan()

        availability.update_scan(scan_id, status="failed", error_message="connection refused")

        scan = availability.list_recent_scans()[0]
        assert scan["error_message"] == "connection refused"
        assert scan["scan_completed_at"] is not None

    def test_update_without_values(self, availability):
        scan_id = availability.start_scan()

        assert availability.update_scan(scan_id) is False
        assert availability.list_recent_scans()[0]["status"] == "running"
