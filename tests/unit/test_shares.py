"""
Unit tests for media share links.
"""

from datetime import timedelta

import pytest

from requestarr.core.security import PasswordSecurity
from requestarr.database import utcnow
from requestarr.services import MediaShareStore
from requestarr.services.shares import is_share_viewable


@pytest.fixture
def shares(db, test_settings) -> MediaShareStore:
    return MediaShareStore(db, password_security=PasswordSecurity(app_settings=test_settings))


class TestCreateShare:
    """Test share creation."""

    def test_token_is_unique_and_hash_omitted(self, shares, make_user):
        user_id = make_user()

        first = shares.create_share("movie", 348, user_id, password="letmein")
        second = shares.create_share("movie", 348, user_id)

        assert first["token"] != second["token"]
        assert len(first["token"]) >= 32
        assert "password_hash" not in first
        assert first["password_set"] is True
        assert second["password_set"] is False

    def test_get_by_token_includes_hash(self, shares, make_user):
        created = shares.create_share("tv", 1399, make_user(), password="letmein")

        share = shares.get_by_token(created["token"])

        assert share["password_hash"].startswith("$argon2id$")
        assert shares.get_by_token("unknown") is None


class TestSharePassword:
    """Test password checks."""

    def test_protected_share(self, shares, make_user):
        share = shares.get_by_token(shares.create_share("movie", 1, make_user(), password="letmein")["token"])

        assert shares.verify_share_password(share, "letmein") is True
        assert shares.verify_share_password(share, "wrong") is False
        assert shares.verify_share_password(share, "") is False

    def test_unprotected_share_always_passes(self, shares, make_user):
        share = shares.get_by_token(shares.create_share("movie", 1, make_user())["token"])

        assert shares.verify_share_password(share, "") is True


class TestViewability:
    """Test expiry and view limits."""

    def test_view_limit(self, shares, make_user):
        created = shares.create_share("movie", 1, make_user(), max_views=2)

        for _ in range(2):
            assert shares.is_share_viewable(shares.get_by_id(created["id"])) is True
            shares.increment_view_count(created["id"], ip="10.0.0.1", country="NL")

        share = shares.get_by_id(created["id"])
        assert share["view_count"] == 2
        assert share["last_viewed_country"] == "NL"
        assert shares.is_share_viewable(share) is False

    def test_expiry(self):
        now = utcnow()
        share = {"expires_at": now + timedelta(hours=1), "max_views": None, "view_count": 0}

        assert is_share_viewable(share, now) is True
        assert is_share_viewable(share, now + timedelta(hours=1)) is False


class TestShareListings:
    """Test listings and deletion."""

    def test_recent_by_user_and_count(self, shares, make_user):
        owner = make_user()
        for tmdb_id in (1, 2, 3):
            shares.create_share("movie", tmdb_id, owner)
        shares.create_share("movie", 4, make_user())

        assert [s["tmdb_id"] for s in shares.list_recent_by_user(owner, limit=2)] == [3, 2]
        assert shares.count_recent_by_user(owner) == 3

    def test_list_all_has_creator_username(self, shares, make_user):
        shares.create_share("movie", 1, make_user("alice"))

        listed = shares.list_all()

        assert listed[0]["created_by_username"] == "alice"
        assert "password_hash" not in listed[0]

    def test_delete_checks_owner(self, shares, make_user):
        owner = make_user()
        created = shares.create_share("movie", 1, owner)

        assert shares.delete_share(created["id"], make_user()) is False
        assert shares.delete_share(created["id"], owner) is True
        assert shares.delete_share_by_admin(created["id"]) is False
