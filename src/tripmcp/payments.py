"""HTTP endpoint recording completed booking payments."""

import logging
from datetime import UTC, datetime
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .users import UserNotFoundError, UserStore

logger = logging.getLogger(__name__)

REQUIRED_TEXT_FIELDS = ("email", "currency", "hotelName", "checkinDate", "checkoutDate")


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def parse_date(value: str) -> datetime:
    """Parse an ISO 8601 date or timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class PaymentsAPI:
    """Records payments against existing users so the MCP tools can list them."""

    def __init__(self, users: UserStore) -> None:
        self.users = users

    def get_routes(self) -> list[Route]:
        return [Route("/api/payments", self._record_payment_endpoint, methods=["POST"])]

    async def _record_payment_endpoint(self, request: Request) -> Response:
        try:
            body: Any = await request.json()
        except ValueError:
            return _error("Request body must be JSON.", 400)
        if not isinstance(body, dict):
            body = {}

        price = body.get("price")
        # bool is an int subclass but not a price
        price_valid = isinstance(price, (int, float)) and not isinstance(price, bool)
        if not price_valid or not all(isinstance(body.get(name), str) and body[name] for name in REQUIRED_TEXT_FIELDS):
            return _error(
                "Missing required fields. Ensure email, price, currency, hotelName, "
                "checkinDate, and checkoutDate are provided.",
                400,
            )

        photo_url = body.get("photoUrl")
        if photo_url is not None and not isinstance(photo_url, str):
            return _error("photoUrl must be a string.", 400)

        try:
            checkin = parse_date(body["checkinDate"])
            checkout = parse_date(body["checkoutDate"])
        except ValueError:
            return _error("Invalid check-in or check-out date.", 400)

        try:
            payment = await self.users.record_payment(
                body["email"],
                float(price),
                body["currency"],
                body["hotelName"],
                checkin,
                checkout,
                photo_url,
            )
        except UserNotFoundError:
            return _error("User not found for the provided email.", 404)

        logger.info(f"Recorded payment {payment['id']} for {body['email']}")
        return JSONResponse({"success": True, "id": payment["id"]})
