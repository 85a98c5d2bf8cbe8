"""
Pydantic schemas for notification endpoint configuration.

Each endpoint type carries its own config shape. The shapes form a tagged
union discriminated on ``type``; stored configs that fail to decode fall back
to the explicit default config of the endpoint's type.
"""

import json
from typing import Annotated, Any, Literal

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = structlog.get_logger()


class TelegramConfig(BaseModel):
    """Telegram bot delivery settings."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["telegram"] = "telegram"
    bot_token: str = Field(
        default="",
        validation_alias=AliasChoices("bot_token", "botToken"),
        description="Bot API token",
    )
    chat_id: str = Field(
        default="",
        validation_alias=AliasChoices("chat_id", "chatId"),
        description="Target chat or channel id",
    )


class DiscordConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["discord"] = "discord"
    webhook_url: str = Field(
        default="",
        validation_alias=AliasChoices("webhook_url", "webhookUrl"),
        description="Discord channel webhook URL",
    )


class EmailConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["email"] = "email"
    to: str = Field(default="", description="Recipient address")


class WebhookConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["webhook"] = "webhook"
    url: str = Field(default="", description="URL receiving the JSON payload")


EndpointConfig = Annotated[
    TelegramConfig | DiscordConfig | EmailConfig | WebhookConfig,
    Field(discriminator="type"),
]

CONFIG_MODELS: dict[str, type[BaseModel]] = {
    "telegram": TelegramConfig,
    "discord": DiscordConfig,
    "email": EmailConfig,
    "webhook": WebhookConfig,
}

_endpoint_config_adapter: TypeAdapter = TypeAdapter(EndpointConfig)


def default_endpoint_config(endpoint_type: str) -> BaseModel:
    """
    Build the default config for an endpoint type.

    Raises:
        ValueError: If the endpoint type is unknown
    """
    try:
        return CONFIG_MODELS[endpoint_type]()
    except KeyError:
        raise ValueError(f"Unknown notification endpoint type: {endpoint_type}") from None


def decode_endpoint_config(endpoint_type: str, raw: Any) -> BaseModel:
    """
    Decode a stored endpoint config into its typed model.

    Args:
        endpoint_type: Endpoint type the config belongs to
        raw: Stored value (dict, JSON text or None)

    Returns:
        The typed config, or the default config for the type when the stored
        value is missing or malformed
    """
    default = default_endpoint_config(endpoint_type)

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("endpoint_config_invalid_json", endpoint_type=endpoint_type)
            return default

    if not isinstance(raw, dict):
        return default

    try:
        return _endpoint_config_adapter.validate_python({**raw, "type": endpoint_type})
    except ValidationError as e:
        logger.warning(
            "endpoint_config_invalid",
            endpoint_type=endpoint_type,
            errors=e.error_count(),
        )
        return default


def encode_endpoint_config(config: BaseModel | dict | None) -> dict:
    """Serialize a config for storage, without the type tag."""
    if config is None:
        return {}
    if isinstance(config, BaseModel):
        return config.model_dump(exclude={"type"})
    return {k: v for k, v in config.items() if k != "type"}
