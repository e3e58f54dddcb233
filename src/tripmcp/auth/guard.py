"""Bearer token guard for the MCP endpoint.

Every request under the guarded path must carry a Google access token, except
``tools/list`` so clients can discover the available tools before signing in.
Rejections are 401 responses whose ``WWW-Authenticate`` challenge points at the
protected resource metadata document.
"""

import json
import logging
from typing import Any, Protocol

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config import ProxySettings
from .context import AUTH_STATE_KEY, AuthContext
from .errors import InvalidTokenError
from .google import GoogleOAuthClient
from .responses import cors_preflight_response

logger = logging.getLogger(__name__)

PREFLIGHT_MAX_AGE = 86400
# Upper bound on the body buffered before authentication
MAX_DISCOVERY_BODY_SIZE = 64 * 1024
DISCOVERY_METHODS = frozenset({"tools/list"})


class UserDirectory(Protocol):
    async def ensure_user(self, email: str) -> Any: ...


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from a ``Bearer <token>`` header value."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[7:] or None


def _is_discovery_request(body: bytes) -> bool:
    if not body:
        return False
    try:
        payload = json.loads(body)
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("method") in DISCOVERY_METHODS


class ResourceGuard:
    """ASGI middleware authenticating requests to the MCP endpoint."""

    def __init__(
        self,
        app: ASGIApp,
        settings: ProxySettings,
        upstream: GoogleOAuthClient,
        users: UserDirectory | None = None,
        path_prefix: str = "/mcp",
        max_body_size: int = MAX_DISCOVERY_BODY_SIZE,
    ) -> None:
        self.app = app
        self.settings = settings
        self.upstream = upstream
        self.users = users
        self.path_prefix = path_prefix
        self.max_body_size = max_body_size

    def challenge(self) -> str:
        return (
            f'Bearer realm="{self.settings.resource_url}", error="invalid_token", '
            f'resource_metadata="{self.settings.protected_resource_metadata_url}"'
        )

    def _unauthorized(self, description: str) -> InvalidTokenError:
        return InvalidTokenError(description, headers={"WWW-Authenticate": self.challenge()})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not scope["path"].startswith(self.path_prefix):
            await self.app(scope, receive, send)
            return

        if scope["method"] == "OPTIONS":
            await cors_preflight_response(max_age=PREFLIGHT_MAX_AGE)(scope, receive, send)
            return

        body, more_body = await self._read_body(receive, self.max_body_size)
        receive = self._replay(body, more_body, receive)
        send = self._with_cors(send)

        if not more_body and len(body) <= self.max_body_size and _is_discovery_request(body):
            await self.app(scope, receive, send)
            return

        try:
            context = await self.authenticate(Headers(scope=scope))
        except InvalidTokenError as e:
            await e.to_response()(scope, receive, send)
            return

        scope = dict(scope)
        scope["state"] = {**scope.get("state", {}), AUTH_STATE_KEY: context}
        await self.app(scope, receive, send)

    async def authenticate(self, headers: Headers) -> AuthContext:
        """Validate the request's bearer token and return the caller's identity."""
        token = extract_bearer_token(headers.get("authorization"))
        if not token:
            raise self._unauthorized("Authentication required")

        info = await self.upstream.token_info(token)
        if info is None:
            raise self._unauthorized("Invalid or expired access token")

        audience = self.upstream.client_id
        if self.settings.require_token_audience and (not audience or audience not in (info.aud, info.azp)):
            logger.warning(f"Rejected access token issued to another client: aud={info.aud}")
            raise self._unauthorized("Invalid or expired access token")

        logger.info(f"Authenticated request for {info.email or info.sub}")
        if info.email and self.users is not None:
            try:
                await self.users.ensure_user(info.email)
            except Exception as e:
                # Google's identity is enough to serve the request
                logger.warning(f"Could not record user {info.email}: {e}")

        return AuthContext(email=info.email, user_id=info.sub, scope=info.scope)

    @staticmethod
    async def _read_body(receive: Receive, limit: int) -> tuple[bytes, bool]:
        """Buffer the body up to ``limit`` bytes. The flag is True if more remains unread."""
        chunks = []
        size = 0
        while True:
            message = await receive()
            if message["type"] != "http.request":
                return b"".join(chunks), False
            body = message.get("body", b"")
            chunks.append(body)
            size += len(body)
            more_body = message.get("more_body", False)
            if not more_body or size > limit:
                return b"".join(chunks), more_body

    @staticmethod
    def _replay(body: bytes, more_body: bool, receive: Receive) -> Receive:
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": body, "more_body": more_body}
            return await receive()

        return replay

    @staticmethod
    def _with_cors(send: Send) -> Send:
        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                if not any(name.lower() == b"access-control-allow-origin" for name, _ in headers):
                    headers.append((b"access-control-allow-origin", b"*"))
                message = {**message, "headers": headers}
            await send(message)

        return send_with_cors
