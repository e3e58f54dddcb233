"""Encoding of the pending authorization carried through Google's ``state`` parameter.

The proxy keeps no server-side record between ``/oauth/authorize`` and
``/oauth/callback``. Instead the original client's redirect URI, client ID and
state are serialized into the state value sent to Google and read back when
Google redirects to the callback.

Wire format: ``<payload>.<mac>`` where ``payload`` is the base64url JSON envelope
and ``mac`` is base64url HMAC-SHA256 of the payload text, both without padding.
"""

import base64
import binascii
import hashlib
import hmac

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidStateError


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(data: str) -> bytes:
    padded = data + "=" * (-len(data) % 4)
    return base64.b64decode(padded, altchars=b"-_", validate=True)


class PendingAuthorization(BaseModel):
    """The original client's redirect intent."""

    model_config = ConfigDict(frozen=True, extra="forbid", strict=True, populate_by_name=True)

    redirect_uri: str = Field(..., alias="original_redirect_uri", min_length=1)
    client_id: str = Field(..., alias="original_client_id", min_length=1)
    state: str | None = Field(None, alias="original_state")


class StateCodec:
    """Signs and verifies pending authorizations."""

    def __init__(self, secret: str | bytes) -> None:
        if not secret:
            raise ValueError("State secret must not be empty")
        self._key = secret.encode("utf-8") if isinstance(secret, str) else secret

    def _sign(self, payload: str) -> str:
        return _b64encode(hmac.new(self._key, payload.encode("ascii"), hashlib.sha256).digest())

    def encode(self, pending: PendingAuthorization) -> str:
        payload = _b64encode(pending.model_dump_json(by_alias=True).encode("utf-8"))
        return f"{payload}.{self._sign(payload)}"

    def decode(self, token: str) -> PendingAuthorization:
        """Verify and decode a state value.

        Raises:
            InvalidStateError: If the value is malformed, tampered with, or signed
                with another key.
        """
        payload, sep, mac = token.partition(".")
        if not sep or not payload or not mac:
            raise InvalidStateError("State is not a signed envelope")

        try:
            expected = self._sign(payload)
        except UnicodeEncodeError as e:
            raise InvalidStateError("State contains non-ASCII characters") from e
        if not hmac.compare_digest(expected.encode("ascii"), mac.encode("utf-8")):
            raise InvalidStateError("State signature mismatch")

        try:
            return PendingAuthorization.model_validate_json(_b64decode(payload))
        except (binascii.Error, ValueError, ValidationError) as e:
            raise InvalidStateError(f"State payload is malformed: {e}") from e
