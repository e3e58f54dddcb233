"""Runtime configuration for the tripmcp OAuth proxy and MCP server.

Settings are plain pydantic models so they can be built directly in tests and
populated from the environment in production via ``ProxySettings.from_env()``.
"""

import os
import secrets
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_SCOPE = "openid email profile"
DEFAULT_BASE_URL = "http://localhost:3000"

# Environment variable -> settings field
_ENV_FIELDS = {
    "GOOGLE_CLIENT_ID": "google_client_id",
    "GOOGLE_CLIENT_SECRET": "google_client_secret",
    "TRIPMCP_STATE_SECRET": "state_secret",
    "TRIPMCP_CODE_TTL_SECONDS": "code_ttl_seconds",
    "TRIPMCP_REDIS_URL": "redis_url",
    "TRIPMCP_REDIS_PASSWORD": "redis_password",
    "DATABASE_URL": "database_url",
    "RAPIDAPI_KEY": "booking_api_key",
    "RAPIDAPI_HOST": "booking_api_host",
    "BOOKING_API_BASE_URL": "booking_api_base_url",
    "TRIPMCP_UPSTREAM_TIMEOUT": "upstream_timeout_seconds",
    "TRIPMCP_LOG_LEVEL": "log_level",
    "TRIPMCP_TELEMETRY": "telemetry_enabled",
    "TRIPMCP_REQUIRE_TOKEN_AUDIENCE": "require_token_audience",
}


class ProxySettings(BaseModel):
    """Configuration for the Google-fronting OAuth proxy and the booking MCP server."""

    # Public URL of this server
    base_url: str = Field(DEFAULT_BASE_URL, description="Public URL clients use to reach this server")

    # Upstream (Google) credentials
    google_client_id: str | None = Field(None, description="OAuth client ID registered with Google")
    google_client_secret: str | None = Field(None, description="OAuth client secret registered with Google")

    # Authorization flow
    state_secret: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="HMAC key protecting the state round-trip through Google",
    )
    default_scope: str = Field(DEFAULT_SCOPE, description="Scope requested when the client does not send one")
    scopes_supported: list[str] = Field(
        default_factory=lambda: ["openid", "email", "profile"], description="Scopes advertised in metadata"
    )
    code_ttl_seconds: float = Field(600, gt=0, description="Lifetime of locally minted authorization codes")
    require_token_audience: bool = Field(
        False, description="Only accept access tokens Google issued to this server's client ID"
    )

    # Shared storage
    redis_url: str | None = Field(None, description="Redis URL for client and code storage")
    redis_password: str | None = Field(None, description="Redis password")

    # User and payment ledger
    database_url: str = Field("sqlite:///./tripmcp.db", description="SQLAlchemy database URL")

    # Booking search API
    booking_api_key: str | None = Field(None, description="RapidAPI key for the booking API")
    booking_api_host: str = Field("booking-com15.p.rapidapi.com", description="RapidAPI host header")
    booking_api_base_url: str = Field("https://booking-com15.p.rapidapi.com", description="Booking API base URL")

    upstream_timeout_seconds: float = Field(10.0, gt=0, description="Timeout for calls to external services")
    log_level: str = Field("INFO", description="Root log level")
    telemetry_enabled: bool = Field(False, description="Export OpenTelemetry traces")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate the public URL and strip any trailing slash."""
        url = v.strip().rstrip("/")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"base_url must be an absolute http(s) URL, got '{v}'")
        return url

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @model_validator(mode="after")
    def validate_shared_state_secret(self) -> "ProxySettings":
        """Require an explicit state secret when instances share Redis storage."""
        # Every instance behind the shared store must verify states signed by the others
        if self.redis_url and "state_secret" not in self.model_fields_set:
            raise ValueError("TRIPMCP_STATE_SECRET must be set when TRIPMCP_REDIS_URL is configured")
        return self

    @property
    def callback_url(self) -> str:
        """Fixed redirect URI registered with Google."""
        return f"{self.base_url}/oauth/callback"

    @property
    def resource_url(self) -> str:
        return f"{self.base_url}/mcp"

    @property
    def protected_resource_metadata_url(self) -> str:
        return f"{self.base_url}/.well-known/oauth-protected-resource"

    @property
    def has_google_credentials(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    @classmethod
    def from_env(cls) -> "ProxySettings":
        """Build settings from environment variables, ignoring unset or empty ones."""
        values: dict[str, str] = {}

        base_url = (
            os.environ.get("TRIPMCP_BASE_URL") or os.environ.get("NEXT_PUBLIC_BASE_URL") or os.environ.get("BASE_URL")
        )
        if base_url:
            values["base_url"] = base_url

        for env_var, field_name in _ENV_FIELDS.items():
            env_value = os.environ.get(env_var)
            if env_value:
                values[field_name] = env_value

        return cls(**values)


@lru_cache()
def get_settings() -> ProxySettings:
    """Get cached settings instance."""
    return ProxySettings.from_env()
