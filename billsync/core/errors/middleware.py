"""
FastAPI exception handler for BillSyncError.

The response body only ever carries the registry's safe message; the
exception's ``detail`` and ``context`` (Stripe IDs, user IDs, SDK error
text) go to the log line.
"""

import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from billsync.core.errors import BillSyncError
from billsync.core.errors.registry import ErrorEntry, error_registry

logger = logging.getLogger(__name__)

_LEVEL_BY_SEVERITY = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _error_body(code: str, entry: Optional[ErrorEntry]) -> dict:
    if entry is None:
        return {
            "code": code,
            "title": "Internal error",
            "message": "An unexpected error occurred.",
            "retryable": False,
            "remediation": [],
        }
    return {
        "code": entry.code,
        "title": entry.title,
        "message": entry.safe_message,
        "retryable": entry.retryable,
        "remediation": entry.remediation,
    }


async def billsync_error_handler(request: Request, exc: BillSyncError) -> JSONResponse:
    entry = error_registry.get(exc.code)

    extra = {
        "error.code": exc.code,
        "error.kind": type(exc).__name__,
        "error.message": exc.detail,
        "http.path": request.url.path,
        **{f"error.ctx.{k}": v for k, v in exc.context.items()},
    }
    if entry is None:
        logger.error("unregistered_error_code", extra=extra)
        status_code = 500
    else:
        logger.log(_LEVEL_BY_SEVERITY.get(entry.severity, logging.ERROR), entry.title, extra=extra)
        status_code = entry.http_status

    return JSONResponse(status_code=status_code, content={"error": _error_body(exc.code, entry)})
