"""OAuth proxy in front of Google and the bearer guard for the MCP endpoint."""

from .codes import AuthorizationCodeRecord, AuthorizationCodeVault
from .context import AuthContext, get_auth_context
from .errors import OAuthError, UpstreamError
from .google import GoogleOAuthClient, TokenInfo, normalize_scope
from .guard import ResourceGuard, extract_bearer_token
from .oauth_proxy import OAuthProxy
from .registry import ClientRegistry, RegisteredClient
from .state import PendingAuthorization, StateCodec

__all__ = [
    "AuthContext",
    "AuthorizationCodeRecord",
    "AuthorizationCodeVault",
    "ClientRegistry",
    "GoogleOAuthClient",
    "OAuthError",
    "OAuthProxy",
    "PendingAuthorization",
    "RegisteredClient",
    "ResourceGuard",
    "StateCodec",
    "TokenInfo",
    "UpstreamError",
    "extract_bearer_token",
    "get_auth_context",
    "normalize_scope",
]
