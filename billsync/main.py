"""
billsync API entry point.

Run with ``uvicorn billsync.main:app``. Startup loads the error registry,
migrates the database and starts the Stripe event poller (a no-op without
BILLSYNC_STRIPE_SECRET_KEY); shutdown stops the poller before the engine
is disposed, so no cycle is left writing to a closed pool.
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billsync.config import settings
from billsync.core.database import close_db, init_db
from billsync.core.errors import BillSyncError
from billsync.core.errors.middleware import billsync_error_handler
from billsync.core.errors.registry import error_registry
from billsync.core.log_middleware import CorrelationMiddleware
from billsync.core.structured_logging import APP_VERSION, setup_logging
from billsync.routers import billing, health
from billsync.services.event_poller import get_stripe_event_poller

setup_logging(log_dir=settings.log_directory, log_level=settings.log_level.upper())

logger = logging.getLogger(__name__)

API_TITLE = "billsync API"

API_DESCRIPTION = """
Keeps a local copy of each user's Stripe customer and subscriptions in step
with Stripe by polling the Stripe events feed in the background.

The billing endpoints only hand out Stripe-hosted URLs (Checkout, customer
portal); subscription rows change when the resulting Stripe events are
picked up by the next poll cycle.
"""

TAGS_METADATA = [
    {"name": "health", "description": "Liveness and billing-sync poller status."},
    {"name": "billing", "description": "Stripe Checkout and customer portal sessions."},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting billsync API v%s", APP_VERSION)

    error_registry.load()
    init_db()

    poller = get_stripe_event_poller()
    if poller.start():
        logger.info("Billing sync enabled")

    yield

    logger.info("Shutting down billsync API")
    await poller.stop()
    close_db()


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=APP_VERSION,
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(BillSyncError, billsync_error_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(billing.router, prefix="/api", tags=["billing"])

    @app.get("/", tags=["health"], summary="API Root")
    async def root():
        return {
            "name": API_TITLE,
            "version": APP_VERSION,
            "billing_sync": settings.stripe_configured,
            "docs": "/docs",
        }

    return app


app = create_app()
