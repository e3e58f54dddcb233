"""MCP tools for searching hotels and reviewing booking payments.

The tool bodies are plain coroutines taking their collaborators and the
caller's ``AuthContext`` explicitly; ``create_mcp_server`` binds them to the
current request's identity when registering them with FastMCP.
"""

import logging
from datetime import UTC, datetime
from typing import Annotated, Any, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import BaseModel, Field

from .auth.context import AuthContext, get_auth_context
from .booking import BookingAPIError, BookingClient, HotelSearchParams
from .users import PAYMENT_HISTORY_LIMIT, UserStore

logger = logging.getLogger(__name__)

SERVER_NAME = "Booking App"


class PaymentHistory(BaseModel):
    """Recorded booking payments for the signed-in user."""

    email: str
    payments: List[Dict[str, Any]]
    message: str


class DestinationResult(BaseModel):
    query: str
    destination: Any


class HotelSearchResult(BaseModel):
    """Hotels available at a destination."""

    dest_id: str
    hotels: List[Any]
    email: str
    message: str
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


def _require_email(auth: Optional[AuthContext], message: str) -> str:
    if auth is None or not auth.email:
        raise ToolError(message)
    return auth.email


async def show_booking_payments(users: UserStore, auth: Optional[AuthContext]) -> PaymentHistory:
    email = _require_email(auth, "User is not authenticated. Please sign in to view your booking payments.")

    payments = await users.list_payments(email, limit=PAYMENT_HISTORY_LIMIT)
    if payments is None:
        raise ToolError("No user found for the authenticated email. Please complete a payment first.")

    if payments:
        plural = "" if len(payments) == 1 else "s"
        message = f"Retrieved {len(payments)} booking payment{plural} for {email}."
    else:
        message = f"No booking payments found for {email}."
    return PaymentHistory(email=email, payments=payments, message=message)


async def search_destination(booking: BookingClient, auth: Optional[AuthContext], query: str) -> DestinationResult:
    _require_email(auth, "User not authenticated")
    try:
        destination = await booking.search_destination(query)
    except BookingAPIError as e:
        raise ToolError(f"Failed to search destinations: {e}") from e
    return DestinationResult(query=query, destination=destination)


async def search_hotels(
    booking: BookingClient, auth: Optional[AuthContext], params: HotelSearchParams
) -> HotelSearchResult:
    email = _require_email(auth, "User not authenticated.")
    try:
        hotel_data = await booking.search_hotels(params)
    except BookingAPIError as e:
        raise ToolError(f"Failed to fetch hotels: {e}") from e

    hotels = []
    if isinstance(hotel_data, dict) and isinstance(hotel_data.get("data"), dict):
        hotels = hotel_data["data"].get("hotels") or []
    return HotelSearchResult(
        dest_id=params.dest_id,
        hotels=hotels,
        email=email,
        message=f"Found {len(hotels)} hotels for destination {params.dest_id}.",
    )


def create_mcp_server(users: UserStore, booking: BookingClient) -> FastMCP:
    """Build the FastMCP server exposing the booking tools."""
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool(name="show_booking_payments")
    async def show_booking_payments_tool() -> PaymentHistory:
        """Show previously recorded booking payments for the authenticated user."""
        return await show_booking_payments(users, get_auth_context())

    @mcp.tool(name="search_destination")
    async def search_destination_tool(
        query: Annotated[
            str,
            Field(
                description="Place to travel to: a city, region, district, landmark or country",
                examples=["Paris", "Tokyo", "Eiffel Tower"],
            ),
        ],
    ) -> DestinationResult:
        """Look up booking destinations matching a place name."""
        return await search_destination(booking, get_auth_context(), query)

    @mcp.tool(name="search_hotels")
    async def search_hotels_tool(params: HotelSearchParams) -> HotelSearchResult:
        """Look up hotels for a destination. Returns a list of hotels with all information."""
        return await search_hotels(booking, get_auth_context(), params)

    return mcp
