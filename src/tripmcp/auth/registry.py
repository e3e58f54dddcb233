"""Dynamic client registration (RFC 7591) storage."""

import logging
import secrets
import time
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from ..config import DEFAULT_SCOPE
from ..storage import BaseStore
from .errors import InvalidClientMetadataError, InvalidRedirectURIError

logger = logging.getLogger(__name__)

DEFAULT_GRANT_TYPES = ["authorization_code", "refresh_token"]
DEFAULT_RESPONSE_TYPES = ["code"]
DEFAULT_AUTH_METHOD = "client_secret_basic"
DEFAULT_CLIENT_NAME = "ChatGPT MCP Client"

PUBLIC_FIELDS = {"client_id", "redirect_uris", "grant_types", "response_types", "client_name", "token_endpoint_auth_method"}


class RegisteredClient(BaseModel):
    """A client registered through ``/oauth/register``."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    redirect_uris: tuple[str, ...] = Field(..., min_length=1)
    grant_types: list[str] = Field(default_factory=lambda: list(DEFAULT_GRANT_TYPES))
    response_types: list[str] = Field(default_factory=lambda: list(DEFAULT_RESPONSE_TYPES))
    client_name: str = DEFAULT_CLIENT_NAME
    scope: str = DEFAULT_SCOPE
    token_endpoint_auth_method: str = DEFAULT_AUTH_METHOD
    registration_access_token: str
    created_at: float = Field(default_factory=time.time)

    def public_info(self) -> dict[str, Any]:
        """Registration fields safe to return on lookup (no secrets)."""
        return self.model_dump(mode="json", include=PUBLIC_FIELDS)

    def registration_response(self, base_url: str) -> dict[str, Any]:
        """Body of the 201 registration response."""
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "client_id_issued_at": int(self.created_at),
            "client_secret_expires_at": 0,
            "redirect_uris": list(self.redirect_uris),
            "grant_types": self.grant_types,
            "response_types": self.response_types,
            "client_name": self.client_name,
            "scope": self.scope,
            "token_endpoint_auth_method": self.token_endpoint_auth_method,
            "registration_access_token": self.registration_access_token,
            "registration_client_uri": f"{base_url}/oauth/register/{self.client_id}",
        }


def _validate_redirect_uris(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list) or not value:
        raise InvalidRedirectURIError("redirect_uris is required and must be a non-empty array")
    for uri in value:
        if not isinstance(uri, str) or not urlparse(uri).scheme:
            raise InvalidRedirectURIError(f"Invalid redirect URI: {uri!r}")
    return tuple(value)


def _string_list(metadata: dict[str, Any], name: str, default: list[str]) -> list[str]:
    value = metadata.get(name)
    if value is None:
        return list(default)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidClientMetadataError(f"{name} must be an array of strings")
    return list(value)


def _string(metadata: dict[str, Any], name: str, default: str) -> str:
    value = metadata.get(name)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        raise InvalidClientMetadataError(f"{name} must be a string")
    return value


class ClientRegistry:
    """Registered clients keyed by generated client ID. Entries never expire."""

    def __init__(self, store: BaseStore) -> None:
        self.store = store

    async def register(self, metadata: dict[str, Any]) -> RegisteredClient:
        """Validate client metadata and store a new registration.

        Raises:
            InvalidRedirectURIError: If ``redirect_uris`` is missing, empty, or malformed.
            InvalidClientMetadataError: If an optional field has the wrong type.
        """
        redirect_uris = _validate_redirect_uris(metadata.get("redirect_uris"))

        client = RegisteredClient(
            client_id=secrets.token_hex(16),
            client_secret=secrets.token_hex(32),
            redirect_uris=redirect_uris,
            grant_types=_string_list(metadata, "grant_types", DEFAULT_GRANT_TYPES),
            response_types=_string_list(metadata, "response_types", DEFAULT_RESPONSE_TYPES),
            client_name=_string(metadata, "client_name", DEFAULT_CLIENT_NAME),
            scope=_string(metadata, "scope", DEFAULT_SCOPE),
            token_endpoint_auth_method=_string(metadata, "token_endpoint_auth_method", DEFAULT_AUTH_METHOD),
            registration_access_token=secrets.token_hex(32),
        )
        await self.store.put(client.client_id, client.model_dump(mode="json"))
        logger.info(f"Registered client {client.client_id} ({client.client_name})")
        return client

    async def lookup(self, client_id: str) -> RegisteredClient | None:
        data = await self.store.get(client_id)
        if data is None:
            return None
        return RegisteredClient.model_validate(data)
