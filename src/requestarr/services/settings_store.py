"""
Settings Store for Requestarr.

This module provides the key/value settings layer:
- A small in-process TTL cache in front of the app_setting table
- Write-then-invalidate coherence (a write deletes the cached entry)
- Typed accessors for integer settings
- Feature configs (Jellyfin, OIDC) decoded into pydantic models
"""

import json
import threading
import time
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from requestarr.config import Settings
from requestarr.database import DatabaseContext, dialect_insert, utcnow
from requestarr.models import AppSetting
from requestarr.schemas.settings import JellyfinConfig, OidcConfig

logger = structlog.get_logger()

JELLYFIN_CONFIG_KEY = "jellyfin_config"
OIDC_CONFIG_KEY = "oidc_config"

_MISSING = object()


class TTLCache:
    """
    In-process cache with per-entry expiry.

    ``None`` is a legitimate cached value (a known-missing setting), so misses
    are reported through ``get``'s default instead.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def setting_cache_key(key: str) -> str:
    return f"setting:{key}"


class SettingsStore:
    """
    Service for reading and writing application settings.

    Reads are served from the TTL cache when possible. After ``set_setting``
    returns, the next ``get_setting`` on the same store observes the new value.
    """

    def __init__(
        self,
        db: DatabaseContext,
        ttl_seconds: int | None = None,
        app_settings: Settings | None = None,
        cache: TTLCache | None = None,
    ):
        """
        Initialize settings store.

        Args:
            db: Database context
            ttl_seconds: Cache lifetime (defaults to SETTINGS_CACHE_TTL_SECONDS)
            app_settings: Settings supplying the TTL and OIDC environment defaults
            cache: Cache instance to use (tests inject one with a fake clock)
        """
        if app_settings is None:
            from requestarr.config import settings as app_settings

        self.db = db
        self.app_settings = app_settings
        ttl = app_settings.settings_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.cache = cache if cache is not None else TTLCache(ttl)
        logger.info("settings_store_initialized", ttl_seconds=self.cache.ttl_seconds)

    def get_setting(self, key: str) -> str | None:
        """
        Get a setting value.

        Args:
            key: Setting key

        Returns:
            str | None: Stored value, or None if the key is not set
        """
        cache_key = setting_cache_key(key)
        cached = self.cache.get(cache_key, _MISSING)
        if cached is not _MISSING:
            return cached

        with self.db.session() as session:
            value = session.query(AppSetting.value).filter(AppSetting.key == key).scalar()

        self.cache.set(cache_key, value)
        return value

    def set_setting(self, key: str, value: str) -> None:
        """Upsert a setting and drop its cached value."""
        now = utcnow()
        stmt = dialect_insert(self.db.dialect_name, AppSetting).values(
            key=key, value=value, created_at=now, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value": stmt.excluded.value, "updated_at": now},
        )
        with self.db.transaction() as session:
            session.execute(stmt)

        self.cache.delete(setting_cache_key(key))
        logger.debug("setting_updated", key=key)

    def delete_setting(self, key: str) -> bool:
        with self.db.transaction() as session:
            deleted = session.query(AppSetting).filter(AppSetting.key == key).delete()

        self.cache.delete(setting_cache_key(key))
        return deleted > 0

    def get_setting_int(self, key: str, fallback: int) -> int:
        """Get a setting parsed as an integer; empty or unparseable values give the fallback."""
        raw = self.get_setting(key)
        if not raw:
            return fallback
        try:
            return int(raw.strip())
        except ValueError:
            return fallback

    def _get_json_model(self, key: str, model: type[BaseModel], base: dict | None = None) -> BaseModel:
        raw = self.get_setting(key)
        stored: dict = {}
        if raw:
            try:
                # Validate the stored document on its own, then keep only the keys it set
                stored = model.model_validate(json.loads(raw)).model_dump(exclude_unset=True)
            except (ValueError, ValidationError) as e:
                logger.warning("stored_setting_invalid", key=key, error=str(e))
                stored = {}
        return model.model_validate({**(base or {}), **stored})

    def get_jellyfin_config(self) -> JellyfinConfig:
        """Jellyfin connection settings, completed with defaults."""
        return self._get_json_model(JELLYFIN_CONFIG_KEY, JellyfinConfig)

    def set_jellyfin_config(self, config: JellyfinConfig) -> None:
        self.set_setting(JELLYFIN_CONFIG_KEY, config.model_dump_json())

    def get_oidc_config(self) -> OidcConfig:
        """
        Effective OIDC settings.

        Layering, lowest to highest: model defaults, OIDC_* environment values,
        the stored document. Empty stored scopes fall back to the defaults.
        """
        env_values = {
            "issuer": self.app_settings.oidc_issuer.strip(),
            "client_id": self.app_settings.oidc_client_id.strip(),
            "client_secret": self.app_settings.oidc_client_secret.strip(),
            "redirect_uri": self.app_settings.oidc_redirect_uri.strip(),
        }
        base = {k: v for k, v in env_values.items() if v}

        config = self._get_json_model(OIDC_CONFIG_KEY, OidcConfig, base)
        if not config.scopes:
            config = config.model_copy(update={"scopes": OidcConfig().scopes})
        return config

    def set_oidc_config(self, config: OidcConfig) -> None:
        self.set_setting(OIDC_CONFIG_KEY, config.model_dump_json())
