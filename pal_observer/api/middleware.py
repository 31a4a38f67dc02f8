from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET",
}


class PermissiveCORSMiddleware(BaseHTTPMiddleware):
    """
    Query responses are readable from any origin, with or without an
    Origin header on the request.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for k, v in CORS_HEADERS.items():
            response.headers[k] = v
        return response
