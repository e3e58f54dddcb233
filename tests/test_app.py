"""Tests for application assembly and the command line."""

import asyncio
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

import pytest
from starlette.testclient import TestClient

from tripmcp.__main__ import build_parser, main
from tripmcp.app import _sweep_periodically, create_app
from tripmcp.storage import MemoryStore
from tripmcp.users import UserStore

BASE_URL = "https://trip.example"


class TestCreateApp:
    """Test the assembled Starlette application."""

    def test_health(self, client: TestClient) -> None:
        """Test the health endpoint reports the service."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "Booking App"}

    def test_unknown_path(self, client: TestClient) -> None:
        """Test paths outside the OAuth and MCP surface are 404."""
        assert client.get("/nope").status_code == 404

    def test_uses_settings_from_environment(self, monkeypatch, upstream, user_store, booking) -> None:
        """Test create_app falls back to environment settings."""
        monkeypatch.setenv("TRIPMCP_BASE_URL", "https://env.example")

        app = create_app(upstream=upstream, user_store=user_store, booking=booking)
        with TestClient(app) as test_client:
            body = test_client.get("/.well-known/oauth-authorization-server").json()

        assert body["issuer"] == "https://env.example"

    def test_redis_checked_at_startup(self, settings, upstream, user_store, booking) -> None:
        """Test a configured Redis URL is pinged on startup and closed on shutdown."""
        settings = settings.model_copy(update={"redis_url": "redis://localhost:6379/0"})

        with (
            patch("tripmcp.app.RedisConnection.ping", return_value=True) as ping,
            patch("tripmcp.app.RedisConnection.close") as close,
        ):
            app = create_app(settings, upstream=upstream, user_store=user_store, booking=booking)
            with TestClient(app):
                ping.assert_awaited_once()
            close.assert_awaited_once()


class TestPaymentsAPI:
    """Test recording payments over HTTP."""

    @pytest.fixture
    def payment(self) -> dict:
        return {
            "email": "traveller@example.com",
            "price": 420.5,
            "currency": "EUR",
            "hotelName": "Hotel du Louvre",
            "checkinDate": "2026-05-01",
            "checkoutDate": "2026-05-04T11:00:00Z",
            "photoUrl": "https://cdn.example/louvre.jpg",
        }

    def test_records_payment(self, client: TestClient, user_store, payment: dict) -> None:
        """Test a payment for a known user is stored and its ID returned."""
        asyncio.run(user_store.ensure_user("traveller@example.com"))

        response = client.post("/api/payments", json=payment)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        payments = asyncio.run(user_store.list_payments("traveller@example.com"))
        assert [p["id"] for p in payments] == [body["id"]]
        assert payments[0]["hotelName"] == "Hotel du Louvre"
        assert payments[0]["price"] == 420.5
        assert payments[0]["checkinDate"].startswith("2026-05-01")

    def test_unknown_user(self, client: TestClient, payment: dict) -> None:
        """Test payments for an email without a user are 404."""
        response = client.post("/api/payments", json=payment)

        assert response.status_code == 404
        assert response.json() == {"error": "User not found for the provided email."}

    @pytest.mark.parametrize(
        "update",
        [
            {"email": ""},
            {"price": "420.5"},
            {"price": True},
            {"currency": None},
            {"hotelName": 7},
            {"checkoutDate": ""},
        ],
    )
    def test_missing_or_invalid_fields(self, client: TestClient, payment: dict, update: dict) -> None:
        """Test each required field is checked."""
        response = client.post("/api/payments", json={**payment, **update})

        assert response.status_code == 400
        assert response.json()["error"].startswith("Missing required fields")

    def test_invalid_date(self, client: TestClient, user_store, payment: dict) -> None:
        """Test unparseable dates are rejected."""
        asyncio.run(user_store.ensure_user("traveller@example.com"))

        response = client.post("/api/payments", json={**payment, "checkinDate": "next tuesday"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid check-in or check-out date."}

    def test_non_json_body(self, client: TestClient) -> None:
        """Test the body must be JSON."""
        response = client.post("/api/payments", content=b"price=1", headers={"content-type": "text/plain"})

        assert response.status_code == 400

    def test_recorded_payment_is_listed_by_tool(self, client: TestClient, payment: dict, valid_token: str) -> None:
        """Test a payment recorded over HTTP shows up in the caller's payment history."""
        headers = {
            "accept": "application/json, text/event-stream",
            "content-type": "application/json",
            "authorization": f"Bearer {valid_token}",
        }
        call = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": "show_booking_payments", "arguments": {}},
        }
        # The first authenticated request creates the user
        client.post("/mcp", json=call, headers=headers)

        assert client.post("/api/payments", json=payment).status_code == 200
        response = client.post("/mcp", json=call, headers=headers)

        assert response.status_code == 200
        assert "Hotel du Louvre" in response.text


class TestSharedState:
    """Test instances sharing a state secret."""

    def test_callback_on_another_instance(self, settings, upstream, user_store, booking) -> None:
        """Test a login started on one instance completes on another with the same secret."""
        first = create_app(settings, upstream=upstream, user_store=user_store, booking=booking)
        second = create_app(settings, upstream=upstream, user_store=UserStore("sqlite://"), booking=booking)

        with TestClient(first, base_url=BASE_URL) as a, TestClient(second, base_url=BASE_URL) as b:
            response = a.get(
                "/oauth/authorize",
                params={
                    "response_type": "code",
                    "client_id": "abc",
                    "redirect_uri": "https://client.example/cb",
                    "state": "xyz",
                },
                follow_redirects=False,
            )
            signed_state = parse_qs(urlsplit(response.headers["location"]).query)["state"][0]

            callback = b.get(
                "/oauth/callback", params={"code": "UPSTREAM123", "state": signed_state}, follow_redirects=False
            )

        assert callback.status_code == 302
        params = parse_qs(urlsplit(callback.headers["location"]).query)
        assert params["state"] == ["xyz"]
        assert params["code"]


class TestSweeper:
    """Test the background expiry sweep."""

    @pytest.mark.asyncio
    async def test_sweeps_until_cancelled(self) -> None:
        """Test each interval sweeps every store."""
        store = MemoryStore()
        calls = []

        def sweep() -> int:
            calls.append(1)
            if len(calls) == 2:
                raise RuntimeError("stop")
            if len(calls) == 3:
                raise asyncio.CancelledError
            return 0

        store.sweep = sweep
        with pytest.raises(asyncio.CancelledError):
            await _sweep_periodically([store], interval=0)

        assert len(calls) == 3


class TestCommandLine:
    """Test the tripmcp entry point."""

    def test_parser_defaults(self, monkeypatch) -> None:
        """Test default bind address and port."""
        monkeypatch.delenv("HOST", raising=False)
        monkeypatch.delenv("PORT", raising=False)

        args = build_parser().parse_args([])
        assert args.host == "127.0.0.1"
        assert args.port == 3000
        assert args.env_file == ".env"

    def test_main_runs_uvicorn(self, monkeypatch, tmp_path) -> None:
        """Test main builds the app from the environment and serves it."""
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        monkeypatch.setenv("TRIPMCP_LOG_LEVEL", "INFO")
        with patch("tripmcp.__main__.uvicorn.run") as run, patch("tripmcp.__main__.configure_logging"):
            exit_code = main(["--port", "8123", "--log-level", "debug", "--env-file", str(tmp_path / "missing.env")])

        assert exit_code == 0
        _, kwargs = run.call_args
        assert kwargs["port"] == 8123
        assert kwargs["log_level"] == "debug"

    def test_main_rejects_invalid_configuration(self, monkeypatch, tmp_path) -> None:
        """Test configuration errors exit with status 2."""
        monkeypatch.setenv("TRIPMCP_BASE_URL", "not-a-url")

        assert main(["--env-file", str(tmp_path / "missing.env")]) == 2
