"""
Request correlation middleware.

Binds ``request_id`` and ``correlation_id`` for the lifetime of each HTTP
request so every log line emitted while serving it (including Stripe calls
made from the billing endpoints) can be joined back to the request.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from billsync.core.structured_logging import correlation_id_var, request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
CORRELATION_ID_HEADER = "x-correlation-id"

# Health probes hit every few seconds; completing them is logged at DEBUG
_QUIET_PATH_PREFIXES = ("/api/health",)


def _bind(var: ContextVar, request: Request, header: str) -> tuple[str, object]:
    value = request.headers.get(header) or uuid.uuid4().hex
    return value, var.set(value)


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id, rid_token = _bind(request_id_var, request, REQUEST_ID_HEADER)
        correlation_id, cid_token = _bind(correlation_id_var, request, CORRELATION_ID_HEADER)

        started = time.perf_counter()
        status_code = None
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            path = request.url.path
            log = logger.debug if path.startswith(_QUIET_PATH_PREFIXES) else logger.info
            log(
                "request_completed",
                extra={
                    "http.method": request.method,
                    "http.path": path,
                    "http.status_code": status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
            request_id_var.reset(rid_token)
            correlation_id_var.reset(cid_token)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
