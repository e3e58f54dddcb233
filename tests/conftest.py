"""Pytest configuration and shared fixtures for tripmcp tests."""

from collections.abc import Generator
from urllib.parse import parse_qs

import httpx
import pytest
from starlette.testclient import TestClient

from tripmcp.app import create_app
from tripmcp.auth.google import GoogleOAuthClient
from tripmcp.booking import BookingClient
from tripmcp.config import ProxySettings, get_settings
from tripmcp.users import UserStore

BASE_URL = "https://trip.example"
GOOGLE_CLIENT_ID = "google-client-id"
GOOGLE_CLIENT_SECRET = "google-client-secret"
VALID_TOKEN = "ya29.valid-token"


class FakeGoogle:
    """Stands in for Google's token, tokeninfo and revocation endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict = {
            "access_token": "ya29.issued",
            "token_type": "Bearer",
            "expires_in": 3599,
            "refresh_token": "1//refresh",
            "scope": "openid https://www.googleapis.com/auth/userinfo.email https://www.googleapis.com/auth/userinfo.profile",
        }
        self.tokeninfo: dict[str, dict] = {
            VALID_TOKEN: {
                "sub": "1234567890",
                "email": "traveller@example.com",
                "email_verified": "true",
                "scope": "openid https://www.googleapis.com/auth/userinfo.email",
                "aud": GOOGLE_CLIENT_ID,
                "exp": "4102444800",
                "expires_in": "3599",
            }
        }

    def token_requests(self) -> list[dict[str, str]]:
        """Decoded form bodies sent to the token endpoint."""
        return [
            {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
            for request in self.requests
            if request.url.path == "/token"
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/token":
            return httpx.Response(self.token_status, json=self.token_body)
        if request.url.path == "/tokeninfo":
            info = self.tokeninfo.get(request.url.params.get("access_token"))
            if info is None:
                return httpx.Response(400, json={"error": "invalid_token", "error_description": "Invalid Value"})
            return httpx.Response(200, json=info)
        if request.url.path == "/revoke":
            return httpx.Response(200, json={})
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch) -> Generator[None, None, None]:
    """Keep host configuration out of the tests."""
    for name in (
        "TRIPMCP_BASE_URL",
        "NEXT_PUBLIC_BASE_URL",
        "BASE_URL",
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "TRIPMCP_STATE_SECRET",
        "TRIPMCP_REDIS_URL",
        "DATABASE_URL",
        "RAPIDAPI_KEY",
        "TRIPMCP_LOG_LEVEL",
        "TRIPMCP_TELEMETRY",
        "TRIPMCP_REQUIRE_TOKEN_AUDIENCE",
        "OTEL_TRACES_EXPORTER",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> ProxySettings:
    return ProxySettings(
        base_url=BASE_URL,
        google_client_id=GOOGLE_CLIENT_ID,
        google_client_secret=GOOGLE_CLIENT_SECRET,
        state_secret="test-state-secret",
        database_url="sqlite://",
        booking_api_key="rapidapi-key",
    )


@pytest.fixture
def fake_google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def upstream(fake_google: FakeGoogle) -> GoogleOAuthClient:
    return GoogleOAuthClient(
        GOOGLE_CLIENT_ID,
        GOOGLE_CLIENT_SECRET,
        transport=fake_google.transport,
        token_endpoint="https://google.test/token",
        tokeninfo_endpoint="https://google.test/tokeninfo",
        revocation_endpoint="https://google.test/revoke",
    )


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite://")
    store.create_all()
    yield store
    store.dispose()


@pytest.fixture
def booking_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def booking(booking_requests: list[httpx.Request]) -> BookingClient:
    def handler(request: httpx.Request) -> httpx.Response:
        booking_requests.append(request)
        if request.url.path.endswith("/searchDestination"):
            return httpx.Response(200, json={"status": True, "data": [{"dest_id": "-1456928", "name": "Paris"}]})
        if request.url.path.endswith("/searchHotels"):
            return httpx.Response(200, json={"status": True, "data": {"hotels": [{"hotel_id": 1}, {"hotel_id": 2}]}})
        return httpx.Response(404)

    return BookingClient("rapidapi-key", base_url="https://booking.test", transport=httpx.MockTransport(handler))


@pytest.fixture
def app(settings, upstream, user_store, booking):
    return create_app(settings, upstream=upstream, user_store=user_store, booking=booking)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app, base_url=BASE_URL) as test_client:
        yield test_client


@pytest.fixture
def valid_token() -> str:
    """Access token the fake Google accepts."""
    return VALID_TOKEN
