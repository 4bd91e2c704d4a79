import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = structlog.get_logger(__name__)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (x-request-id, generated when absent), binds it into the structlog context
    so guard, lifecycle and publish events carry it, and logs one http.request line with latency."""

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = rid
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000.0, 2)

        logger.info(
            "http.request",
            path=request.url.path,
            method=request.method,
            status=response.status_code,
            latency_ms=elapsed_ms,
        )
        response.headers["x-request-id"] = rid
        return response
