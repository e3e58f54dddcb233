"""CORS-aware response helpers shared by the OAuth endpoints and the resource guard."""

from typing import Any

from starlette.responses import JSONResponse, Response

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Authorization, Content-Type",
}

NO_STORE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


def cors_preflight_response(max_age: int = 3600) -> Response:
    """Return CORS preflight response."""
    return Response(
        status_code=204,
        headers={**CORS_HEADERS, "Access-Control-Max-Age": str(max_age)},
    )


def cors_json_response(
    data: Any,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Return JSON response with CORS headers."""
    return JSONResponse(data, status_code=status_code, headers={**CORS_HEADERS, **(headers or {})})
