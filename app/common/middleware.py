"""
Middleware for handling the business-unit context
"""
from fastapi import Request, status
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
import logging

logger = logging.getLogger(__name__)

BUSINESS_UNIT_HEADER = "X-Business-Unit-ID"


class BusinessUnitMiddleware(BaseHTTPMiddleware):
    """
    Middleware that extracts business_unit_id from the X-Business-Unit-ID header
    and sets it on request.state. Endpoints that need a business unit declare the
    require_module dependency, which rejects requests without it.
    """

    # Paths that never carry business-unit context
    EXEMPT_PATHS = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path == "/" or any(path.startswith(p) for p in self.EXEMPT_PATHS):
            return await call_next(request)

        # Skip for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        header = request.headers.get(BUSINESS_UNIT_HEADER)
        if header is None:
            return await call_next(request)

        try:
            business_unit_id = int(header)
            if business_unit_id <= 0:
                raise ValueError(header)
        except ValueError:
            return Response(
                content='{"detail":"Invalid X-Business-Unit-ID. Must be a positive integer"}',
                status_code=status.HTTP_400_BAD_REQUEST,
                media_type="application/json"
            )

        request.state.business_unit_id = business_unit_id
        logger.debug(f"Request to {path} with business_unit_id: {business_unit_id}")

        response = await call_next(request)
        response.headers["X-Business-Unit-ID"] = str(business_unit_id)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers for production
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response
