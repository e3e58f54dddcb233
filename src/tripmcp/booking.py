"""Client for the hosted Booking.com search API (RapidAPI)."""

import logging
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, Field

from .telemetry import record_http_status, upstream_span

logger = logging.getLogger(__name__)

SEARCH_DESTINATION_PATH = "/api/v1/hotels/searchDestination"
SEARCH_HOTELS_PATH = "/api/v1/hotels/searchHotels"


class BookingAPIError(Exception):
    """The booking API is not configured or returned an error."""


class HotelSearchParams(BaseModel):
    """Query for hotels at a destination."""

    arrival_date: str = Field(..., description="Arrival date (YYYY-MM-DD)")
    departure_date: str = Field(..., description="Departure date (YYYY-MM-DD)")
    dest_id: str = Field(..., description="Destination identifier")
    search_type: str = Field(..., description="Destination type (e.g. city, region)")
    adults: int = Field(1, ge=0, description="Number of adults travelling")
    children_age: Optional[Union[List[int], str]] = Field(None, description="Children ages")
    room_qty: int = Field(1, gt=0, description="Number of rooms requested")
    currency_code: str = Field("USD", description="Currency code (ISO 4217)")
    location: str = Field("US", description="Traveller location or market")
    languagecode: str = Field("en-us", description="Preferred language code")
    temperature_unit: str = Field("c", description="Temperature unit (c/f)")
    units: str = Field("metric", description="Measurement units (metric/imperial)")
    page_number: int = Field(1, gt=0, description="Pagination page number")

    def to_query(self) -> Dict[str, str]:
        query = {}
        for key, value in self.model_dump(exclude_none=True).items():
            if isinstance(value, list):
                value = ",".join(str(age) for age in value)
            query[key] = str(value)
        return query


class BookingClient:
    """Thin wrapper over the booking search endpoints."""

    def __init__(
        self,
        api_key: Optional[str],
        host: str = "booking-com15.p.rapidapi.com",
        base_url: str = "https://booking-com15.p.rapidapi.com",
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.host = host
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise BookingAPIError("RAPIDAPI_KEY is not configured")
        return {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.host,
            "Accept": "application/json",
        }

    async def _get(self, operation: str, path: str, params: Dict[str, str]) -> Any:
        headers = self._headers()
        url = f"{self.base_url}{path}"
        with upstream_span(operation, url=url) as span:
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    response = await client.get(url, params=params, headers=headers)
            except httpx.HTTPError as e:
                logger.error(f"Booking API {operation} request failed: {e}")
                raise BookingAPIError(f"Booking API request failed: {type(e).__name__}") from e
            record_http_status(span, response.status_code)

        if not response.is_success:
            logger.warning(f"Booking API {operation} failed with status {response.status_code}")
            raise BookingAPIError(f"API call failed: {response.status_code} {response.reason_phrase}")

        try:
            return response.json()
        except ValueError as e:
            raise BookingAPIError("Booking API returned invalid JSON") from e

    async def search_destination(self, query: str) -> Any:
        return await self._get("search_destination", SEARCH_DESTINATION_PATH, {"query": query})

    async def search_hotels(self, params: HotelSearchParams) -> Any:
        return await self._get("search_hotels", SEARCH_HOTELS_PATH, params.to_query())
