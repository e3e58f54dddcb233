"""OAuth proxy that lets MCP clients sign in with Google.

MCP clients such as ChatGPT expect Dynamic Client Registration and an
authorization server they can discover. Google offers neither for arbitrary
clients, so this proxy sits in between:

1. Clients register with the proxy and receive a generated client ID/secret.
2. ``/oauth/authorize`` packs the client's redirect URI, client ID and state into
   a signed state value and redirects to Google with the proxy's own client ID.
3. Google redirects to ``/oauth/callback``; the proxy mints a local,
   single-use code and redirects back to the client.
4. ``/oauth/token`` redeems the local code by exchanging Google's code with the
   proxy's credentials, or forwards refresh grants straight to Google.
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from starlette.datastructures import FormData
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.routing import Route

from ..config import ProxySettings
from .codes import AuthorizationCodeVault
from .errors import (
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidStateError,
    OAuthError,
    UnsupportedGrantTypeError,
)
from .google import GoogleOAuthClient, normalize_scope
from .registry import ClientRegistry
from .responses import NO_STORE_HEADERS, cors_json_response, cors_preflight_response
from .state import PendingAuthorization, StateCodec

logger = logging.getLogger(__name__)

METADATA_CACHE_HEADERS = {"Cache-Control": "public, max-age=3600"}

Endpoint = Callable[[Any, Request], Awaitable[Response]]


def oauth_endpoint(handler: Endpoint) -> Endpoint:
    """Answer CORS preflights and render ``OAuthError`` as an OAuth error response."""

    @functools.wraps(handler)
    async def wrapper(self: Any, request: Request) -> Response:
        if request.method == "OPTIONS":
            return cors_preflight_response()
        try:
            return await handler(self, request)
        except OAuthError as e:
            logger.info(f"{request.url.path} rejected: {e.error} ({e.error_description})")
            return e.to_response()

    return wrapper


def _with_query(url: str, params: dict[str, str]) -> str:
    """Set query parameters on ``url``, replacing existing ones with the same name."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def _truncate(value: str | None, length: int = 8) -> str | None:
    return f"{value[:length]}..." if value else value


def _form_value(form: FormData, name: str) -> str | None:
    """Return a text form field, rejecting file uploads."""
    value = form.get(name)
    if value is not None and not isinstance(value, str):
        raise InvalidRequestError(f"{name} must be a text field")
    return value


class OAuthProxy:
    """Authorization server facade in front of Google."""

    def __init__(
        self,
        settings: ProxySettings,
        upstream: GoogleOAuthClient,
        clients: ClientRegistry,
        codes: AuthorizationCodeVault,
    ) -> None:
        self.settings = settings
        self.base_url = settings.base_url
        self.upstream = upstream
        self.clients = clients
        self.codes = codes
        self.state_codec = StateCodec(settings.state_secret)

    def get_routes(self) -> list[Route]:
        """Get OAuth metadata and flow routes."""
        return [
            # OAuth Authorization Server Metadata (RFC 8414)
            Route("/.well-known/oauth-authorization-server", self._metadata_endpoint, methods=["GET", "OPTIONS"]),
            # Protected Resource Metadata (RFC 9728)
            Route(
                "/.well-known/oauth-protected-resource", self._protected_resource_metadata, methods=["GET", "OPTIONS"]
            ),
            Route(
                "/.well-known/oauth-protected-resource/mcp",
                self._protected_resource_metadata,
                methods=["GET", "OPTIONS"],
            ),
            # Dynamic Client Registration (RFC 7591)
            Route("/oauth/register", self._register_client_endpoint, methods=["POST", "OPTIONS"]),
            Route("/oauth/register/{client_id}", self._client_info_endpoint, methods=["GET", "OPTIONS"]),
            Route("/oauth/authorize", self._authorize_endpoint, methods=["GET", "OPTIONS"]),
            Route("/oauth/callback", self._callback_endpoint, methods=["GET", "OPTIONS"]),
            Route("/oauth/token", self._token_endpoint, methods=["POST", "OPTIONS"]),
            # Token revocation (RFC 7009)
            Route("/oauth/revoke", self._revoke_endpoint, methods=["POST", "OPTIONS"]),
        ]

    def authorization_server_metadata(self) -> dict[str, Any]:
        return {
            "issuer": self.base_url,
            "authorization_endpoint": f"{self.base_url}/oauth/authorize",
            "token_endpoint": f"{self.base_url}/oauth/token",
            "registration_endpoint": f"{self.base_url}/oauth/register",
            "revocation_endpoint": f"{self.base_url}/oauth/revoke",
            "scopes_supported": self.settings.scopes_supported,
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code", "refresh_token"],
            "token_endpoint_auth_methods_supported": ["client_secret_basic", "client_secret_post", "none"],
            "code_challenge_methods_supported": ["S256", "plain"],
        }

    def protected_resource_metadata(self) -> dict[str, Any]:
        return {
            "resource": self.settings.resource_url,
            "authorization_servers": [self.base_url],
            "scopes_supported": self.settings.scopes_supported,
            "bearer_methods_supported": ["header"],
        }

    @oauth_endpoint
    async def _metadata_endpoint(self, request: Request) -> Response:
        """OAuth Authorization Server Metadata endpoint (RFC 8414)."""
        return cors_json_response(self.authorization_server_metadata(), headers=METADATA_CACHE_HEADERS)

    @oauth_endpoint
    async def _protected_resource_metadata(self, request: Request) -> Response:
        """Protected Resource Metadata endpoint (RFC 9728)."""
        return cors_json_response(self.protected_resource_metadata(), headers=METADATA_CACHE_HEADERS)

    @oauth_endpoint
    async def _register_client_endpoint(self, request: Request) -> Response:
        """Dynamic Client Registration endpoint."""
        try:
            data = await request.json()
        except ValueError:
            raise InvalidRequestError("Failed to parse registration request")
        if not isinstance(data, dict):
            raise InvalidRequestError("Registration request must be a JSON object")

        client = await self.clients.register(data)
        return cors_json_response(
            client.registration_response(self.base_url),
            status_code=201,
            headers={"Cache-Control": "no-store"},
        )

    @oauth_endpoint
    async def _client_info_endpoint(self, request: Request) -> Response:
        """Public registration details for a client."""
        client = await self.clients.lookup(request.path_params["client_id"])
        if client is None:
            raise InvalidClientError("Client not found")
        return cors_json_response(client.public_info())

    @oauth_endpoint
    async def _authorize_endpoint(self, request: Request) -> Response:
        """Begin authorization by redirecting the user agent to Google."""
        params = request.query_params
        response_type = params.get("response_type")
        client_id = params.get("client_id")
        redirect_uri = params.get("redirect_uri")

        if not response_type or not client_id or not redirect_uri:
            raise InvalidRequestError("Missing required parameters")

        # Registrations are not durable, so an unknown client is allowed through
        client = await self.clients.lookup(client_id)
        if client is not None and redirect_uri not in client.redirect_uris:
            raise InvalidRequestError("redirect_uri is not registered for this client")

        pending = PendingAuthorization(redirect_uri=redirect_uri, client_id=client_id, state=params.get("state"))
        upstream_url = self.upstream.authorization_url(
            redirect_uri=self.settings.callback_url,
            scope=params.get("scope") or self.settings.default_scope,
            state=self.state_codec.encode(pending),
        )
        logger.info(f"Redirecting client {client_id} to Google for authorization")
        return RedirectResponse(upstream_url, status_code=302)

    @oauth_endpoint
    async def _callback_endpoint(self, request: Request) -> Response:
        """Handle callback from Google and hand a local code back to the client."""
        params = request.query_params

        error = params.get("error")
        if error:
            raise OAuthError(params.get("error_description"), error=error, status_code=400)

        code = params.get("code")
        state = params.get("state")
        if not code or not state:
            raise InvalidRequestError("Missing code or state")

        try:
            pending = self.state_codec.decode(state)
        except InvalidStateError as e:
            logger.warning(f"Rejected callback state: {e}")
            raise InvalidRequestError("Invalid state parameter") from e

        local_code = await self.codes.issue(
            upstream_code=code,
            client_id=pending.client_id,
            redirect_uri=pending.redirect_uri,
        )

        redirect_params = {"code": local_code}
        if pending.state:
            redirect_params["state"] = pending.state
        return RedirectResponse(_with_query(pending.redirect_uri, redirect_params), status_code=302)

    @oauth_endpoint
    async def _token_endpoint(self, request: Request) -> Response:
        """OAuth token endpoint."""
        try:
            form = await request.form()
        except Exception as e:
            raise InvalidRequestError("Invalid form data") from e

        grant_type = _form_value(form, "grant_type")
        logger.info(
            f"Token request: grant_type={grant_type}, code={_truncate(_form_value(form, 'code'))}, "
            f"refresh_token={_truncate(_form_value(form, 'refresh_token'), 6)}"
        )

        if grant_type == "refresh_token":
            tokens = await self._refresh_token_grant(form)
        elif grant_type == "authorization_code":
            tokens = await self._authorization_code_grant(form)
        else:
            raise UnsupportedGrantTypeError(f"Grant type '{grant_type}' is not supported")

        return cors_json_response(self._token_response(tokens), headers=NO_STORE_HEADERS)

    async def _refresh_token_grant(self, form: FormData) -> dict[str, Any]:
        refresh_token = _form_value(form, "refresh_token")
        if not refresh_token:
            raise InvalidRequestError("Missing refresh_token")
        self.upstream.ensure_configured()
        return await self.upstream.refresh(refresh_token)

    async def _authorization_code_grant(self, form: FormData) -> dict[str, Any]:
        code = _form_value(form, "code")
        if not code:
            raise InvalidRequestError("Missing code")
        self.upstream.ensure_configured()

        record = await self.codes.consume(code)
        if record is None:
            logger.warning(f"Auth code not found or already consumed: {_truncate(code)}")
            raise InvalidGrantError("Invalid or expired authorization code")

        client_id = _form_value(form, "client_id")
        if client_id and client_id != record.client_id:
            raise InvalidGrantError("Authorization code was issued to another client")

        tokens = await self.upstream.exchange_code(record.upstream_code, self.settings.callback_url)
        logger.info(f"Exchanged authorization code for client {record.client_id}")
        return tokens

    @staticmethod
    def _token_response(tokens: dict[str, Any]) -> dict[str, Any]:
        payload = {
            "access_token": tokens["access_token"],
            "token_type": tokens.get("token_type") or "Bearer",
            "expires_in": tokens.get("expires_in"),
            "scope": normalize_scope(tokens.get("scope")),
        }
        if tokens.get("refresh_token"):
            payload["refresh_token"] = tokens["refresh_token"]
        return payload

    @oauth_endpoint
    async def _revoke_endpoint(self, request: Request) -> Response:
        """OAuth token revocation endpoint."""
        try:
            form = await request.form()
        except Exception as e:
            raise InvalidRequestError("Invalid form data") from e

        token = _form_value(form, "token")
        if not token:
            raise InvalidRequestError("Missing token parameter")

        await self.upstream.revoke(token)
        return cors_json_response({})
