"""
Pydantic schemas for Requestarr.

This module exports the validated shapes exchanged with the stores.
"""

from .notification import (
    DiscordConfig,
    EmailConfig,
    EndpointConfig,
    TelegramConfig,
    WebhookConfig,
    decode_endpoint_config,
    default_endpoint_config,
    encode_endpoint_config,
)
from .request import RequestItemSpec
from .settings import (
    JellyfinConfig,
    JellyfinLibrary,
    OidcConfig,
    RequestLimit,
    RequestLimitDefaults,
    RequestLimitStatus,
)

__all__ = [
    # Notification endpoint configs
    "TelegramConfig",
    "DiscordConfig",
    "EmailConfig",
    "WebhookConfig",
    "EndpointConfig",
    "decode_endpoint_config",
    "default_endpoint_config",
    "encode_endpoint_config",
    # Requests
    "RequestItemSpec",
    # Settings
    "JellyfinConfig",
    "JellyfinLibrary",
    "OidcConfig",
    "RequestLimit",
    "RequestLimitDefaults",
    "RequestLimitStatus",
]
