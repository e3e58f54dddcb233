"""Starlette application wiring the OAuth proxy in front of the MCP server."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from typing import Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route

from .auth.codes import AuthorizationCodeVault
from .auth.google import GoogleOAuthClient
from .auth.guard import ResourceGuard
from .auth.oauth_proxy import OAuthProxy
from .auth.registry import ClientRegistry
from .booking import BookingClient
from .config import ProxySettings, get_settings
from .payments import PaymentsAPI
from .server import create_mcp_server
from .storage import BaseStore, RedisConnection, create_store
from .telemetry import init_telemetry, shutdown_telemetry
from .users import UserStore

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60


async def _sweep_periodically(stores: list[BaseStore], interval: float = SWEEP_INTERVAL_SECONDS) -> None:
    """Drop expired entries from in-process stores until cancelled."""
    while True:
        await asyncio.sleep(interval)
        for store in stores:
            try:
                store.sweep()
            except Exception as e:
                logger.warning(f"Store sweep failed: {e}")


def create_app(
    settings: Optional[ProxySettings] = None,
    *,
    upstream: Optional[GoogleOAuthClient] = None,
    user_store: Optional[UserStore] = None,
    booking: Optional[BookingClient] = None,
) -> Starlette:
    """Assemble the OAuth endpoints, the payments API, ``/health`` and the guarded MCP endpoint."""
    settings = settings or get_settings()
    upstream = upstream or GoogleOAuthClient(
        settings.google_client_id,
        settings.google_client_secret,
        timeout=settings.upstream_timeout_seconds,
    )
    user_store = user_store or UserStore(settings.database_url)
    booking = booking or BookingClient(
        settings.booking_api_key,
        settings.booking_api_host,
        settings.booking_api_base_url,
        timeout=settings.upstream_timeout_seconds,
    )

    redis_connection = RedisConnection(settings.redis_url, settings.redis_password) if settings.redis_url else None
    client_store = create_store("clients", redis_connection)
    code_store = create_store("codes", redis_connection)

    proxy = OAuthProxy(
        settings,
        upstream,
        ClientRegistry(client_store),
        AuthorizationCodeVault(code_store, ttl=settings.code_ttl_seconds),
    )

    mcp = create_mcp_server(user_store, booking)
    mcp_app = mcp.http_app(path="/mcp", stateless_http=True)
    guarded_mcp = ResourceGuard(mcp_app, settings, upstream, users=user_store)

    async def health(request: Request) -> Response:
        return JSONResponse({"status": "ok", "service": mcp.name})

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
        if settings.telemetry_enabled:
            init_telemetry(service_name="tripmcp")
        if redis_connection is not None:
            await redis_connection.ping()
        await asyncio.to_thread(user_store.create_all)

        sweeper = asyncio.create_task(_sweep_periodically([client_store, code_store]))
        try:
            async with mcp_app.lifespan(mcp_app):
                logger.info(f"tripmcp serving MCP at {settings.resource_url}")
                yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            if redis_connection is not None:
                await redis_connection.close()
            user_store.dispose()
            if settings.telemetry_enabled:
                shutdown_telemetry()

    routes = [
        *proxy.get_routes(),
        *PaymentsAPI(user_store).get_routes(),
        Route("/health", health, methods=["GET"]),
        # Everything else, including /mcp, goes through the guard
        Mount("/", app=guarded_mcp),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.settings = settings
    app.state.proxy = proxy
    return app
