"""
Unit tests for the settings store and its TTL cache.
"""

import json

import pytest

from requestarr.schemas.settings import JellyfinConfig, OidcConfig
from requestarr.services.settings_store import SettingsStore, TTLCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cached_store(db, test_settings, clock) -> SettingsStore:
    return SettingsStore(db, app_settings=test_settings, cache=TTLCache(30, clock=clock))


class TestTTLCache:
    """Test per-entry expiry."""

    def test_entry_expires(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.set("a", 1)

        clock.advance(9)
        assert cache.get("a") == 1
        clock.advance(1)
        assert cache.get("a") is None

    def test_none_is_a_cached_value(self, clock):
        """Test that a cached None is distinguishable from a miss."""
        cache = TTLCache(10, clock=clock)
        cache.set("missing", None)

        assert "missing" in cache
        assert "other" not in cache

    def test_delete_and_clear(self, clock):
        cache = TTLCache(10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.delete("a")
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestSettingsStore:
    """Test settings reads, writes and cache coherence."""

    def test_get_unknown_setting(self, settings_store):
        assert settings_store.get_setting("nope") is None

    def test_write_then_read_is_coherent(self, cached_store):
        """Test that a write is visible immediately even after a cached read."""
        cached_store.set_setting("theme", "dark")
        assert cached_store.get_setting("theme") == "dark"

        cached_store.set_setting("theme", "light")

        assert cached_store.get_setting("theme") == "light"

    def test_cached_miss_is_invalidated_by_write(self, cached_store):
        """Test that a cached 'not set' does not hide a later write."""
        assert cached_store.get_setting("theme") is None

        cached_store.set_setting("theme", "dark")

        assert cached_store.get_setting("theme") == "dark"

    def test_reads_served_from_cache_within_ttl(self, db, cached_store, test_settings, clock):
        """Test that a write from another store is seen only after the TTL."""
        cached_store.set_setting("theme", "dark")
        assert cached_store.get_setting("theme") == "dark"

        SettingsStore(db, app_settings=test_settings).set_setting("theme", "light")

        assert cached_store.get_setting("theme") == "dark"
        clock.advance(31)
        assert cached_store.get_setting("theme") == "light"

    def test_delete_setting(self, cached_store):
        cached_store.set_setting("theme", "dark")

        assert cached_store.delete_setting("theme") is True
        assert cached_store.get_setting("theme") is None
        assert cached_store.delete_setting("theme") is False

    @pytest.mark.parametrize(("raw", "expected"), [(None, 9), ("", 9), (" 12 ", 12), ("abc", 9)])
    def test_get_setting_int(self, settings_store, raw, expected):
        if raw is not None:
            settings_store.set_setting("n", raw)

        assert settings_store.get_setting_int("n", 9) == expected


class TestFeatureConfigs:
    """Test JSON feature configs decoded into models."""

    def test_jellyfin_config_defaults(self, settings_store):
        config = settings_store.get_jellyfin_config()

        assert config == JellyfinConfig()
        assert config.port == 8096

    def test_jellyfin_config_round_trip(self, settings_store):
        settings_store.set_jellyfin_config(JellyfinConfig(hostname="media.local", port=443, use_ssl=True))

        config = settings_store.get_jellyfin_config()

        assert config.hostname == "media.local"
        assert config.use_ssl is True

    def test_jellyfin_config_accepts_camel_case(self, settings_store):
        """Test that documents written with camelCase keys still decode."""
        settings_store.set_setting(
            "jellyfin_config",
            json.dumps({"hostname": "jf", "useSsl": True, "serverId": "abc", "libraries": []}),
        )

        config = settings_store.get_jellyfin_config()

        assert config.use_ssl is True
        assert config.server_id == "abc"

    def test_malformed_config_gives_defaults(self, settings_store):
        settings_store.set_setting("jellyfin_config", "{not json")

        assert settings_store.get_jellyfin_config() == JellyfinConfig()

    def test_oidc_layering(self, db, test_settings):
        """Test defaults < environment < stored document."""
        env_settings = test_settings.model_copy(
            update={"oidc_issuer": "https://env.example", "oidc_client_id": "env-client"}
        )
        store = SettingsStore(db, app_settings=env_settings)
        store.set_setting("oidc_config", json.dumps({"clientId": "stored-client", "scopes": []}))

        config = store.get_oidc_config()

        assert config.issuer == "https://env.example"
        assert config.client_id == "stored-client"
        assert config.scopes == ["openid", "profile", "email"]
        assert config.username_claim == "preferred_username"

    def test_set_oidc_config(self, settings_store):
        settings_store.set_oidc_config(OidcConfig(enabled=True, issuer="https://idp", scopes=["openid"]))

        config = settings_store.get_oidc_config()

        assert config.enabled is True
        assert config.scopes == ["openid"]
