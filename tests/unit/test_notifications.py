"""
Unit tests for notification endpoints and the in-app inbox.
"""

import pytest
from pydantic import ValidationError

from requestarr.models import NotificationEndpoint
from requestarr.schemas.notification import (
    DiscordConfig,
    EmailConfig,
    TelegramConfig,
    WebhookConfig,
    decode_endpoint_config,
)
from requestarr.services import NotificationEndpointStore, UserNotificationStore
from requestarr.models.notification import DEFAULT_NOTIFICATION_EVENTS


@pytest.fixture
def endpoints(db) -> NotificationEndpointStore:
    return NotificationEndpointStore(db)


@pytest.fixture
def inbox(db) -> UserNotificationStore:
    return UserNotificationStore(db)


class TestDecodeEndpointConfig:
    """Test lenient decoding of stored configs."""

    def test_decodes_camel_case(self):
        config = decode_endpoint_config("telegram", {"botToken": "123:abc", "chatId": "-100"})

        assert config == TelegramConfig(bot_token="123:abc", chat_id="-100")

    def test_decodes_json_text(self):
        assert decode_endpoint_config("webhook", '{"url": "https://hook"}') == WebhookConfig(url="https://hook")

    @pytest.mark.parametrize("raw", [None, "{broken", "[1, 2]", {"url": 5}])
    def test_malformed_gives_default(self, raw):
        assert decode_endpoint_config("webhook", raw) == WebhookConfig()

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            decode_endpoint_config("pigeon", {})


class TestNotificationEndpointStore:
    """Test endpoint CRUD and user grants."""

    def test_create_omits_config(self, endpoints):
        created = endpoints.create("Ops", "discord", {"webhook_url": "https://discord/hook"}, is_global=True)

        assert "config" not in created
        assert created["type"] == "discord"
        assert created["events"] == list(DEFAULT_NOTIFICATION_EVENTS)

    def test_get_full_returns_typed_config(self, endpoints):
        created = endpoints.create("Mail", "email", EmailConfig(to="ops@example.com"))

        full = endpoints.get_full(created["id"])

        assert full["config"] == EmailConfig(to="ops@example.com")
        assert endpoints.get_full(9999) is None

    def test_invalid_config_rejected_on_write(self, endpoints):
        """Test that writes validate strictly instead of falling back."""
        with pytest.raises(ValidationError):
            endpoints.create("Bad", "webhook", {"url": ["not", "a", "string"]})

    def test_mismatched_typed_config_rejected(self, endpoints):
        with pytest.raises(ValueError):
            endpoints.create("Bad", "webhook", DiscordConfig(webhook_url="https://x"))

    def test_stored_garbage_reads_as_default(self, db, endpoints):
        created = endpoints.create("Hook", "webhook", {"url": "https://hook"})
        with db.transaction() as session:
            session.get(NotificationEndpoint, created["id"]).config = {"url": {"nested": True}}

        assert endpoints.get_full(created["id"])["config"] == WebhookConfig()

    def test_update_keeps_type(self, endpoints):
        created = endpoints.create("Hook", "webhook", {"url": "https://a"})

        updated = endpoints.update(created["id"], "Renamed", False, True, ["request_available"], {"url": "https://b"})

        full = endpoints.get_full(created["id"])
        assert updated["name"] == "Renamed"
        assert full["enabled"] is False
        assert full["events"] == ["request_available"]
        assert full["config"] == WebhookConfig(url="https://b")
        assert endpoints.update(9999, "x", True, False, [], None) is None

    def test_list_endpoints_public_and_full(self, endpoints):
        """Test that the public listing hides configs and the full listing decodes them."""
        first = endpoints.create("Hook", "webhook", {"url": "https://a"})
        second = endpoints.create("Ops", "discord", {"webhook_url": "https://discord/hook"}, enabled=False)

        public = endpoints.list_endpoints()
        full = endpoints.list_endpoints_full()

        assert [e["id"] for e in public] == [second["id"], first["id"]]
        assert all("config" not in e for e in public)
        assert [e["config"] for e in full] == [DiscordConfig(webhook_url="https://discord/hook"), WebhookConfig(url="https://a")]

    def test_global_and_granted_listings(self, endpoints, make_user):
        user_id = make_user()
        shared = endpoints.create("Shared", "webhook", {"url": "https://g"}, is_global=True)
        personal = endpoints.create("Personal", "telegram", {"bot_token": "t", "chat_id": "c"})
        disabled = endpoints.create("Off", "webhook", {"url": "https://o"}, enabled=False)
        endpoints.set_user_endpoint_ids(user_id, [personal["id"], disabled["id"]])

        assert [e["id"] for e in endpoints.list_global_full()] == [shared["id"]]
        assert [e["id"] for e in endpoints.list_for_user(user_id)] == [personal["id"]]
        assert endpoints.list_user_endpoint_ids(user_id) == sorted([personal["id"], disabled["id"]])

    def test_delete_removes_grants(self, endpoints, make_user):
        user_id = make_user()
        created = endpoints.create("Hook", "webhook", {"url": "https://a"})
        endpoints.set_user_endpoint_ids(user_id, [created["id"]])

        assert endpoints.delete(created["id"]) is True
        assert endpoints.list_user_endpoint_ids(user_id) == []
        assert endpoints.delete(created["id"]) is False


class TestUserNotificationStore:
    """Test the in-app inbox."""

    def test_create_and_list_newest_first(self, inbox, make_user):
        user_id = make_user()
        inbox.create(user_id, "request_available", "Ready", "Alien is available", metadata={"tmdb_id": 348})
        inbox.create(user_id, "request_denied", "Denied", "Sorry")

        items = inbox.list_for_user(user_id)

        assert [item["title"] for item in items] == ["Denied", "Ready"]
        assert items[1]["metadata"] == {"tmdb_id": 348}
        assert items[0]["is_read"] is False

    def test_read_state(self, inbox, make_user):
        user_id = make_user()
        first = inbox.create(user_id, "info", "One", "1")
        inbox.create(user_id, "info", "Two", "2")

        assert inbox.mark_read(first["id"], make_user()) is False
        assert inbox.mark_read(first["id"], user_id) is True
        assert inbox.count_unread(user_id) == 1
        assert [item["title"] for item in inbox.list_unread(user_id)] == ["Two"]
        assert inbox.mark_all_read(user_id) == 1
        assert inbox.count_unread(user_id) == 0

    def test_delete_checks_owner(self, inbox, make_user):
        user_id = make_user()
        created = inbox.create(user_id, "info", "One", "1")

        assert inbox.delete(created["id"], make_user()) is False
        assert inbox.delete(created["id"], user_id) is True
        assert inbox.list_for_user(user_id) == []
