"""Client for Google's OAuth 2.0 endpoints.

All calls go through ``httpx.AsyncClient``. Non-success responses are raised as
``UpstreamError`` carrying Google's status and body so handlers can relay them
unchanged. Transport failures become ``ServerError``. Nothing is retried.
"""

import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ConfigDict

from ..config import DEFAULT_SCOPE
from ..telemetry import record_http_status, upstream_span
from .errors import ServerError, UpstreamError

logger = logging.getLogger(__name__)

GOOGLE_AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
GOOGLE_TOKENINFO_ENDPOINT = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_REVOCATION_ENDPOINT = "https://oauth2.googleapis.com/revoke"

GOOGLE_SCOPE_PREFIX = "https://www.googleapis.com/auth/"


def normalize_scope(scope: str | None) -> str:
    """Strip Google's URL scope namespacing down to bare scope names.

    ``https://www.googleapis.com/auth/userinfo.email`` becomes ``email``. An empty
    result falls back to the default OpenID scope set.
    """
    if scope:
        scope = scope.replace(GOOGLE_SCOPE_PREFIX, "").replace("userinfo.", "").strip()
    return scope or DEFAULT_SCOPE


class TokenInfo(BaseModel):
    """Subset of Google's tokeninfo response."""

    model_config = ConfigDict(extra="allow")

    sub: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    scope: str | None = None
    azp: str | None = None
    aud: str | None = None
    exp: int | None = None
    expires_in: int | None = None

    def is_expired(self, now: float | None = None) -> bool:
        if self.exp is None:
            return False
        return self.exp < (time.time() if now is None else now)


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        return body
    return {"error": "server_error", "error_description": response.text[:200] or f"HTTP {response.status_code}"}


class GoogleOAuthClient:
    """The proxy's own confidential client at Google."""

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        authorization_endpoint: str = GOOGLE_AUTHORIZATION_ENDPOINT,
        token_endpoint: str = GOOGLE_TOKEN_ENDPOINT,
        tokeninfo_endpoint: str = GOOGLE_TOKENINFO_ENDPOINT,
        revocation_endpoint: str = GOOGLE_REVOCATION_ENDPOINT,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.authorization_endpoint = authorization_endpoint
        self.token_endpoint = token_endpoint
        self.tokeninfo_endpoint = tokeninfo_endpoint
        self.revocation_endpoint = revocation_endpoint
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _require_client_id(self) -> str:
        if not self.client_id:
            logger.error("GOOGLE_CLIENT_ID is not configured")
            raise ServerError("Server not configured")
        return self.client_id

    def _require_credentials(self) -> tuple[str, str]:
        if not self.client_id or not self.client_secret:
            logger.error("Missing Google OAuth credentials")
            raise ServerError("OAuth client not configured")
        return self.client_id, self.client_secret

    def ensure_configured(self) -> None:
        """Fail with ``server_error`` before any state is consumed if credentials are missing."""
        self._require_credentials()

    def authorization_url(self, redirect_uri: str, scope: str, state: str) -> str:
        """Google consent URL requesting offline access."""
        params = {
            "client_id": self._require_client_id(),
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": scope,
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{self.authorization_endpoint}?{urlencode(params)}"

    async def _post_form(self, operation: str, url: str, data: dict[str, str]) -> httpx.Response:
        with upstream_span(operation, url=url) as span:
            try:
                async with self._http() as client:
                    response = await client.post(url, data=data, headers={"Accept": "application/json"})
            except httpx.HTTPError as e:
                logger.error(f"Google {operation} request failed: {e}")
                raise ServerError(f"Upstream provider request failed: {type(e).__name__}") from e
            record_http_status(span, response.status_code)

        if response.status_code != 200:
            body = _error_body(response)
            logger.warning(f"Google {operation} failed with status {response.status_code}: {body.get('error')}")
            raise UpstreamError(response.status_code, body)
        return response

    async def _token_request(self, operation: str, data: dict[str, str]) -> dict[str, Any]:
        client_id, client_secret = self._require_credentials()
        response = await self._post_form(
            operation,
            self.token_endpoint,
            {**data, "client_id": client_id, "client_secret": client_secret},
        )
        try:
            tokens = response.json()
        except ValueError as e:
            raise ServerError("Upstream provider returned a malformed token response") from e
        if not isinstance(tokens, dict) or "access_token" not in tokens:
            raise ServerError("Upstream provider returned a malformed token response")
        return tokens

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, Any]:
        """Exchange Google's authorization code for tokens."""
        return await self._token_request(
            "exchange_code",
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri},
        )

    async def refresh(self, refresh_token: str) -> dict[str, Any]:
        """Exchange a Google refresh token for a new access token."""
        return await self._token_request(
            "refresh",
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )

    async def revoke(self, token: str) -> None:
        await self._post_form("revoke", self.revocation_endpoint, {"token": token})

    async def token_info(self, access_token: str) -> TokenInfo | None:
        """Validate an access token with Google's tokeninfo endpoint.

        Returns None for rejected, expired, or unverifiable tokens.
        """
        with upstream_span("token_info", url=self.tokeninfo_endpoint) as span:
            try:
                async with self._http() as client:
                    response = await client.get(self.tokeninfo_endpoint, params={"access_token": access_token})
            except httpx.HTTPError as e:
                logger.error(f"Error validating Google token: {e}")
                return None
            record_http_status(span, response.status_code)

        if response.status_code != 200:
            return None

        try:
            info = TokenInfo.model_validate(response.json())
        except ValueError as e:
            logger.warning(f"Unexpected tokeninfo response: {e}")
            return None

        if info.is_expired():
            return None
        return info
