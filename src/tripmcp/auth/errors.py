"""OAuth error taxonomy.

Every error renders to the OAuth-shaped ``{"error", "error_description"}`` body
(RFC 6749 section 5.2). ``UpstreamError`` is the exception: Google's status and
body are passed through unchanged.
"""

from typing import Any

from starlette.responses import Response

from .responses import cors_json_response


class OAuthError(Exception):
    """Base class for errors surfaced to OAuth clients."""

    error: str = "invalid_request"
    status_code: int = 400

    def __init__(
        self,
        error_description: str | None = None,
        *,
        error: str | None = None,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.error_description = error_description
        self.headers = headers or {}
        super().__init__(error_description or self.error)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.error_description is not None:
            body["error_description"] = self.error_description
        return body

    def to_response(self) -> Response:
        return cors_json_response(self.to_dict(), status_code=self.status_code, headers=self.headers)


class InvalidRequestError(OAuthError):
    error = "invalid_request"


class InvalidRedirectURIError(OAuthError):
    error = "invalid_redirect_uri"


class InvalidClientMetadataError(OAuthError):
    error = "invalid_client_metadata"


class InvalidClientError(OAuthError):
    error = "invalid_client"
    status_code = 404


class UnsupportedGrantTypeError(OAuthError):
    error = "unsupported_grant_type"


class InvalidGrantError(OAuthError):
    error = "invalid_grant"


class InvalidTokenError(OAuthError):
    error = "invalid_token"
    status_code = 401


class ServerError(OAuthError):
    error = "server_error"
    status_code = 500


class UpstreamError(OAuthError):
    """Non-success response from the upstream provider, relayed verbatim."""

    def __init__(self, status_code: int, body: Any) -> None:
        self.body = body
        description = body.get("error_description") if isinstance(body, dict) else None
        error = body.get("error") if isinstance(body, dict) else None
        super().__init__(description, error=error or "server_error", status_code=status_code)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.body, dict):
            return self.body
        return super().to_dict()


class InvalidStateError(ValueError):
    """The state value returned by the upstream provider could not be verified or decoded."""
