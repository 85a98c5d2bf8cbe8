"""
Unit tests for the smaller per-title stores.

Covers favorites and watchlists, recently viewed pages, issue reports,
request comments, Web Push subscriptions and upgrade finder bookkeeping.
"""

import pytest

from requestarr.services import (
    MediaIssueStore,
    MediaListStore,
    PushSubscriptionStore,
    RecentlyViewedStore,
    RequestCommentStore,
    UpgradeFinderStore,
)
from requestarr.services.media_lists import clamp_list_limit


class TestMediaLists:
    """Test favorites and watchlists."""

    @pytest.mark.parametrize(("limit", "expected"), [(None, 50), (0, 1), (-5, 1), (75, 75), (500, 200)])
    def test_clamp_list_limit(self, limit, expected):
        assert clamp_list_limit(limit) == expected

    def test_add_is_idempotent(self, db, make_user):
        store = MediaListStore(db)
        user_id = make_user()

        store.add(user_id, "favorite", "movie", 348)
        store.add(user_id, "favorite", "movie", 348)

        assert len(store.list_items(user_id, "favorite")) == 1

    def test_status_and_remove(self, db, make_user):
        store = MediaListStore(db)
        user_id = make_user()
        store.add(user_id, "watchlist", "tv", 1399)

        assert store.status(user_id, "tv", 1399) == {"favorite": False, "watchlist": True}
        assert store.remove(user_id, "watchlist", "tv", 1399) is True
        assert store.status(user_id, "tv", 1399) == {"favorite": False, "watchlist": False}
        assert store.remove(user_id, "watchlist", "tv", 1399) is False

    def test_list_is_per_list_and_limited(self, db, make_user):
        store = MediaListStore(db)
        user_id = make_user()
        for tmdb_id in (1, 2, 3):
            store.add(user_id, "favorite", "movie", tmdb_id)
        store.add(user_id, "watchlist", "movie", 4)

        favorites = store.list_items(user_id, "favorite", limit=2)

        assert [row["tmdb_id"] for row in favorites] == [3, 2]


class TestRecentlyViewed:
    """Test page view history."""

    def test_repeat_view_refreshes_row(self, db, make_user):
        store = RecentlyViewedStore(db)
        user_id = make_user()
        store.track(user_id, "movie", 1, "Old title")
        store.track(user_id, "tv", 2, "Show")

        store.track(user_id, "movie", 1, "New title", poster_path="/p.jpg")

        rows = store.list_recent(user_id)
        assert [(row["tmdb_id"], row["title"]) for row in rows] == [(1, "New title"), (2, "Show")]
        assert rows[0]["poster_path"] == "/p.jpg"

    def test_clear(self, db, make_user):
        store = RecentlyViewedStore(db)
        user_id = make_user()
        store.track(user_id, "movie", 1, "A")

        assert store.clear(user_id) == 1
        assert store.list_recent(user_id) == []


class TestMediaIssues:
    """Test issue reports."""

    def test_create_and_list_with_reporter(self, db, make_user):
        store = MediaIssueStore(db)
        created = store.create_issue("movie", 348, "Alien", "audio", "Out of sync", make_user("alice"))

        issues = store.list_issues()

        assert created["status"] == "open"
        assert issues[0]["id"] == created["id"]
        assert issues[0]["reporter_username"] == "alice"

    def test_counts_by_status_and_category(self, db, make_user):
        store = MediaIssueStore(db)
        user_id = make_user()
        store.create_issue("movie", 1, "A", "Video", "x", user_id)
        store.create_issue("movie", 1, "A", "subtitle", "x", user_id)
        resolved = store.create_issue("tv", 2, "B", "subtitles", "x", user_id)
        store.create_issue("tv", 2, "B", "other", "x", user_id)
        store.update_status(resolved["id"], "resolved")

        counts = store.get_issue_counts()

        assert counts == {
            "total": 4,
            "open": 3,
            "closed": 1,
            "video": 1,
            "audio": 0,
            "subtitles": 2,
            "others": 1,
        }
        assert store.count_open_by_tmdb("movie", 1) == 2
        assert store.count_open_by_tmdb("tv", 2) == 2

    def test_update_and_delete(self, db, make_user):
        store = MediaIssueStore(db)
        created = store.create_issue("movie", 1, "A", "audio", "x", make_user())

        assert store.update_status(created["id"], "resolved")["status"] == "resolved"
        assert store.update_status("missing", "resolved") is None
        assert store.delete_issue(created["id"]) is True
        assert store.get_issue(created["id"]) is None


class TestRequestComments:
    """Test request comment threads."""

    def test_thread_oldest_first_with_author(self, db, request_store, make_user):
        store = RequestCommentStore(db)
        requester = make_user("alice")
        admin = make_user("root", groups=["admin"])
        request_id = request_store.create_request("movie", 348, "Alien", requester)

        store.add_comment(request_id, requester, "Please add this")
        store.add_comment(request_id, admin, "Done", is_admin_comment=True)

        thread = store.list_comments(request_id)
        assert [c["comment"] for c in thread] == ["Please add this", "Done"]
        assert thread[1]["user"] == {"id": admin, "username": "root", "avatar_url": None, "groups": ["admin"]}
        assert thread[1]["is_admin_comment"] is True
        assert store.count_comments(request_id) == 2

    def test_comments_deleted_with_request(self, db, request_store, make_user):
        store = RequestCommentStore(db)
        user_id = make_user()
        request_id = request_store.create_request("movie", 348, "Alien", user_id)
        store.add_comment(request_id, user_id, "hi")

        request_store.delete_request(request_id)

        assert store.count_comments(request_id) == 0


class TestPushSubscriptions:
    """Test Web Push subscription storage."""

    def test_resave_refreshes_keys(self, db, make_user):
        store = PushSubscriptionStore(db)
        user_id = make_user()

        first = store.save_subscription(user_id, "https://push/1", "key-1", "auth-1")
        second = store.save_subscription(user_id, "https://push/1", "key-2", "auth-2")

        subscriptions = store.list_for_user(user_id)
        assert first == second
        assert len(subscriptions) == 1
        assert subscriptions[0]["keys"] == {"p256dh": "key-2", "auth": "auth-2"}

    def test_delete(self, db, make_user):
        store = PushSubscriptionStore(db)
        user_id = make_user()
        store.save_subscription(user_id, "https://push/1", "k", "a")

        assert store.delete_subscription(make_user(), "https://push/1") is False
        assert store.delete_subscription(user_id, "https://push/1") is True
        assert store.list_for_user(user_id) == []


class TestUpgradeFinder:
    """Test upgrade finder hints and overrides."""

    def test_hint_upsert(self, db):
        store = UpgradeFinderStore(db)

        store.upsert_hint("movie", 10, "none")
        store.upsert_hint("movie", 10, "available", hint_text="2160p release found")

        hints = store.list_hints()
        assert len(hints) == 1
        assert hints[0]["status"] == "available"
        assert hints[0]["hint_text"] == "2160p release found"

    def test_override_upsert(self, db):
        store = UpgradeFinderStore(db)

        store.upsert_override("tv", 20, True)
        store.upsert_override("tv", 20, False)

        overrides = store.list_overrides()
        assert len(overrides) == 1
        assert overrides[0]["ignore_4k"] is False
