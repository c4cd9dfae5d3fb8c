"""Per-request logging context and request metrics."""

import time
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from task_api.logging_config import REQUEST_ID_HEADER, bind_request_id, clear_request_context
from task_api.metrics import REQUEST_COUNT, REQUEST_LATENCY

logger = structlog.get_logger()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request ID to the log context and records request metrics."""

    def __init__(self, app, exclude_paths: list[str] | None = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or ["/metrics"]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = bind_request_id(request.headers.get(REQUEST_ID_HEADER))
        start = time.perf_counter()

        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers[REQUEST_ID_HEADER] = request_id

        if not any(request.url.path.startswith(p) for p in self.exclude_paths):
            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")
            REQUEST_COUNT.labels(
                endpoint=endpoint,
                method=request.method,
                status=str(response.status_code),
            ).inc()
            REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.perf_counter() - start)

        return response
