"""Short-lived, single-use authorization codes minted by the proxy.

A code handed to the MCP client stands in for Google's authorization code until
the client redeems it at ``/oauth/token``. Codes are consumed with an atomic
pop, so at most one exchange can ever see a given record.
"""

import logging
import secrets
import time

from pydantic import BaseModel, Field

from ..storage import BaseStore

logger = logging.getLogger(__name__)

CODE_TTL_SECONDS = 600


class AuthorizationCodeRecord(BaseModel):
    """What a local code stands for."""

    upstream_code: str
    client_id: str
    redirect_uri: str
    created_at: float = Field(default_factory=time.time)


class AuthorizationCodeVault:
    """Issues and consumes local authorization codes."""

    def __init__(self, store: BaseStore, ttl: float = CODE_TTL_SECONDS) -> None:
        self.store = store
        self.ttl = ttl

    async def issue(self, upstream_code: str, client_id: str, redirect_uri: str) -> str:
        """Mint a local code for ``upstream_code`` and store it for ``ttl`` seconds."""
        code = secrets.token_urlsafe(32)
        record = AuthorizationCodeRecord(upstream_code=upstream_code, client_id=client_id, redirect_uri=redirect_uri)
        await self.store.put(code, record.model_dump(), ttl=self.ttl)
        logger.debug(f"Issued authorization code {code[:8]}... for client {client_id}")
        return code

    async def consume(self, code: str) -> AuthorizationCodeRecord | None:
        """Remove and return the record for ``code``.

        Returns None when the code is unknown, already consumed, or expired.
        """
        data = await self.store.pop(code)
        if data is None:
            logger.debug(f"Authorization code {code[:8]}... not found or already consumed")
            return None
        return AuthorizationCodeRecord.model_validate(data)
