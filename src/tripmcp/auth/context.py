"""Per-request identity established by the resource guard.

The guard stores an ``AuthContext`` on the request scope (``request.state.auth``)
rather than in any module-level variable, so concurrent requests never see each
other's identity. Tools read it back through FastMCP's access to the current
HTTP request.
"""

from dataclasses import dataclass

from fastmcp.server.dependencies import get_http_request
from starlette.requests import Request

AUTH_STATE_KEY = "auth"


@dataclass(frozen=True)
class AuthContext:
    """Identity asserted by Google for the current request."""

    email: str | None
    user_id: str | None
    scope: str | None


def get_auth_context(request: Request | None = None) -> AuthContext | None:
    """Return the identity for ``request``, or for the active MCP request if omitted."""
    if request is None:
        try:
            request = get_http_request()
        except RuntimeError:
            return None
    return getattr(request.state, AUTH_STATE_KEY, None)
