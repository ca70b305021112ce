"""Metrics middleware for API."""

import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.metrics import api_request_duration


def _endpoint_label(request: Request) -> str:
    # Route template keeps ids out of label values
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to collect API request metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics."""
        start_time = time.perf_counter()

        response = await call_next(request)

        api_request_duration.labels(
            method=request.method, endpoint=_endpoint_label(request), status=response.status_code
        ).observe(time.perf_counter() - start_time)

        return response
