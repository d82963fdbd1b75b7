"""Request-scoped middleware for API requests."""

import hmac
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """
    Shared-key check for cron and admin callers.

    Every non-public path needs an X-API-Key header matching the configured
    key. Compared in constant time.
    """

    PUBLIC_PATHS = [
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, api_key: str):
        super().__init__(app)
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        if self._is_public_path(request.url.path):
            return await call_next(request)

        presented = request.headers.get("X-API-Key", "")
        if not hmac.compare_digest(presented.encode("utf-8"), self._api_key.encode("utf-8")):
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Valid X-API-Key header required",
                ).model_dump(mode="json"),
            )

        return await call_next(request)
