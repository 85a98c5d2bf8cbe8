"""
Pydantic schemas for stored feature settings and request limits.

Stored JSON is validated with these models. Every field has a default, so a
partial stored document is completed with defaults and a malformed one is
replaced by the default model.
"""

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

DEFAULT_OIDC_SCOPES: tuple[str, ...] = ("openid", "profile", "email")


class JellyfinLibrary(BaseModel):
    """One Jellyfin library selected for availability scans."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    type: Literal["movie", "show"]
    enabled: bool
    last_scan: int | None = Field(
        default=None,
        validation_alias=AliasChoices("last_scan", "lastScan"),
        description="Epoch milliseconds of the last completed scan",
    )


class JellyfinConfig(BaseModel):
    """Jellyfin server connection settings (setting key ``jellyfin_config``)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    hostname: str = ""
    port: int = 8096
    use_ssl: bool = Field(default=False, validation_alias=AliasChoices("use_ssl", "useSsl"))
    url_base: str = Field(default="", validation_alias=AliasChoices("url_base", "urlBase"))
    external_url: str = Field(default="", validation_alias=AliasChoices("external_url", "externalUrl"))
    forgot_password_url: str = Field(
        default="",
        validation_alias=AliasChoices("forgot_password_url", "jellyfinForgotPasswordUrl"),
    )
    libraries: list[JellyfinLibrary] = Field(default_factory=list)
    server_id: str = Field(default="", validation_alias=AliasChoices("server_id", "serverId"))
    api_key_encrypted: str = Field(
        default="",
        validation_alias=AliasChoices("api_key_encrypted", "apiKeyEncrypted"),
        description="Fernet-encrypted API key",
    )


class OidcConfig(BaseModel):
    """
    OIDC provider settings (setting key ``oidc_config``).

    Effective values are layered: model defaults, then OIDC_* environment
    values, then the stored document.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = False
    issuer: str = ""
    client_id: str = Field(default="", validation_alias=AliasChoices("client_id", "clientId"))
    client_secret: str = Field(default="", validation_alias=AliasChoices("client_secret", "clientSecret"))
    redirect_uri: str = Field(default="", validation_alias=AliasChoices("redirect_uri", "redirectUri"))
    authorization_url: str = Field(
        default="", validation_alias=AliasChoices("authorization_url", "authorizationUrl")
    )
    token_url: str = Field(default="", validation_alias=AliasChoices("token_url", "tokenUrl"))
    userinfo_url: str = Field(default="", validation_alias=AliasChoices("userinfo_url", "userinfoUrl"))
    jwks_url: str = Field(default="", validation_alias=AliasChoices("jwks_url", "jwksUrl"))
    logout_url: str = Field(default="", validation_alias=AliasChoices("logout_url", "logoutUrl"))
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_OIDC_SCOPES))
    username_claim: str = Field(
        default="preferred_username", validation_alias=AliasChoices("username_claim", "usernameClaim")
    )
    email_claim: str = Field(default="email", validation_alias=AliasChoices("email_claim", "emailClaim"))
    groups_claim: str = Field(default="groups", validation_alias=AliasChoices("groups_claim", "groupsClaim"))
    allow_auto_create: bool = Field(
        default=False, validation_alias=AliasChoices("allow_auto_create", "allowAutoCreate")
    )
    match_by_email: bool = Field(default=True, validation_alias=AliasChoices("match_by_email", "matchByEmail"))
    match_by_username: bool = Field(
        default=True, validation_alias=AliasChoices("match_by_username", "matchByUsername")
    )
    sync_groups: bool = Field(default=False, validation_alias=AliasChoices("sync_groups", "syncGroups"))


class RequestLimit(BaseModel):
    limit: int = Field(default=0, ge=0, description="Requests allowed per window (0 = unlimited)")
    days: int = Field(default=7, ge=1, description="Window length in days")


class RequestLimitDefaults(BaseModel):
    movie: RequestLimit = Field(default_factory=RequestLimit)
    series: RequestLimit = Field(default_factory=RequestLimit)


class RequestLimitStatus(BaseModel):
    """Effective request quota for one user and media kind."""

    limit: int
    days: int
    used: int
    remaining: int | None
    unlimited: bool
