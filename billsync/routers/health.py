"""
Health endpoints.

- GET /api/health               liveness only, never touches Stripe or the DB
- GET /api/health/billing-sync  Stripe event poller state and last cycle
"""
from datetime import datetime, timezone

from fastapi import APIRouter

from billsync.config import settings
from billsync.core.structured_logging import APP_VERSION, SERVICE_NAME, get_uptime_s
from billsync.services.event_poller import get_stripe_event_poller

router = APIRouter()


@router.get("/health")
async def health_check():
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": APP_VERSION,
        "uptime_s": round(get_uptime_s(), 1),
        "stripe_configured": settings.stripe_configured,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _sync_status(poller: dict) -> str:
    # disabled: no Stripe key (or shut down); degraded: last cycle raised
    if not poller["running"]:
        return "disabled"
    if poller["last_error"]:
        return "degraded"
    return "ok"


@router.get("/health/billing-sync")
async def billing_sync_health():
    poller = get_stripe_event_poller().status()
    return {"status": _sync_status(poller), "poller": poller}
