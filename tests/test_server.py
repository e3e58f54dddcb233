"""Tests for the booking MCP tools."""

from datetime import datetime

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from tripmcp.auth.context import AuthContext
from tripmcp.booking import BookingClient, HotelSearchParams
from tripmcp.server import create_mcp_server, search_destination, search_hotels, show_booking_payments

TRAVELLER = AuthContext(email="traveller@example.com", user_id="123", scope="openid email")


@pytest.fixture
def hotel_params() -> HotelSearchParams:
    return HotelSearchParams(
        arrival_date="2026-05-01", departure_date="2026-05-03", dest_id="-1456928", search_type="CITY"
    )


class TestShowBookingPayments:
    """Test the payment history tool."""

    @pytest.mark.asyncio
    async def test_requires_authentication(self, user_store) -> None:
        """Test unauthenticated calls fail with a tool error."""
        with pytest.raises(ToolError, match="not authenticated"):
            await show_booking_payments(user_store, None)

    @pytest.mark.asyncio
    async def test_unknown_user(self, user_store) -> None:
        """Test a caller without a local user record gets a tool error."""
        with pytest.raises(ToolError, match="No user found"):
            await show_booking_payments(user_store, TRAVELLER)

    @pytest.mark.asyncio
    async def test_lists_payments(self, user_store) -> None:
        """Test the caller's payments are returned."""
        await user_store.ensure_user(TRAVELLER.email)
        await user_store.record_payment(
            TRAVELLER.email, 99.0, "USD", "Hotel", datetime(2026, 5, 1), datetime(2026, 5, 2)
        )

        result = await show_booking_payments(user_store, TRAVELLER)
        assert result.email == TRAVELLER.email
        assert len(result.payments) == 1
        assert result.message == "Retrieved 1 booking payment for traveller@example.com."

    @pytest.mark.asyncio
    async def test_no_payments(self, user_store) -> None:
        """Test a known user without payments gets an informative message."""
        await user_store.ensure_user(TRAVELLER.email)

        result = await show_booking_payments(user_store, TRAVELLER)
        assert result.payments == []
        assert result.message == "No booking payments found for traveller@example.com."


class TestSearchTools:
    """Test the booking search tools."""

    @pytest.mark.asyncio
    async def test_search_destination(self, booking: BookingClient) -> None:
        """Test destination search returns the API result."""
        result = await search_destination(booking, TRAVELLER, "Paris")

        assert result.query == "Paris"
        assert result.destination["data"][0]["name"] == "Paris"

    @pytest.mark.asyncio
    async def test_search_destination_requires_authentication(self, booking: BookingClient, booking_requests) -> None:
        """Test no API call is made for anonymous callers."""
        with pytest.raises(ToolError):
            await search_destination(booking, None, "Paris")
        assert booking_requests == []

    @pytest.mark.asyncio
    async def test_search_hotels(self, booking: BookingClient, hotel_params: HotelSearchParams) -> None:
        """Test hotels are extracted from the API response."""
        result = await search_hotels(booking, TRAVELLER, hotel_params)

        assert result.hotels == [{"hotel_id": 1}, {"hotel_id": 2}]
        assert result.email == TRAVELLER.email
        assert result.message == "Found 2 hotels for destination -1456928."

    @pytest.mark.asyncio
    async def test_search_hotels_api_failure(self, hotel_params: HotelSearchParams) -> None:
        """Test booking API errors become tool errors."""
        with pytest.raises(ToolError, match="Failed to fetch hotels"):
            await search_hotels(BookingClient(None), TRAVELLER, hotel_params)


class TestMcpServer:
    """Test tool registration."""

    @pytest.mark.asyncio
    async def test_tools_registered(self, user_store, booking) -> None:
        """Test the server exposes the booking tools."""
        mcp = create_mcp_server(user_store, booking)

        async with Client(mcp) as client:
            tools = await client.list_tools()

        assert {tool.name for tool in tools} == {"show_booking_payments", "search_destination", "search_hotels"}

    @pytest.mark.asyncio
    async def test_tool_without_http_request_is_unauthenticated(self, user_store, booking) -> None:
        """Test calls outside an HTTP request carry no identity."""
        mcp = create_mcp_server(user_store, booking)

        async with Client(mcp) as client:
            result = await client.call_tool("show_booking_payments", {}, raise_on_error=False)

        assert result.is_error
