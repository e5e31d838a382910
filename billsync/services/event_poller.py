"""
Stripe Event Poller — background reconciliation loop
====================================================

Keeps the local billing tables eventually consistent with Stripe without
inbound webhooks:

1. On startup, build the fetcher; without Stripe credentials log a single
   warning and never start.
2. Background: run one poll cycle, sleep ``stripe_poll_interval_s``
   (default 5 min), repeat.

States: ``idle`` (sleeping) and ``polling`` (cycle in progress). Exactly one
loop task exists; a cycle always runs to completion (or failure) before
the next sleep, so cycles never overlap. A failed cycle is logged and the
loop carries on; only cancellation (shutdown) ends it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from billsync.config import settings
from billsync.core.errors import StripeNotConfigured
from billsync.core.structured_logging import poll_cycle_id_var
from billsync.services.billing_store import BillingStore
from billsync.services.customer_resolver import CustomerResolver
from billsync.services.event_dispatcher import EventDispatcher
from billsync.services.event_fetcher import PollSummary, StripeEventFetcher
from billsync.services.stripe_gateway import get_stripe_gateway
from billsync.services.subscription_sync import SubscriptionUpserter

logger = logging.getLogger(__name__)

IDLE = "idle"
POLLING = "polling"


def build_stripe_event_fetcher(store: Optional[BillingStore] = None) -> Optional[StripeEventFetcher]:
    """Wire gateway → resolver/upserter → dispatcher → fetcher from settings."""
    gateway = get_stripe_gateway()
    if gateway is None:
        return None
    store = store or BillingStore()
    dispatcher = EventDispatcher(
        CustomerResolver(store, gateway),
        SubscriptionUpserter(store),
    )
    return StripeEventFetcher(gateway, dispatcher, page_size=settings.stripe_events_page_size)


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


class StripeEventPoller:
    """Owns the single background task that polls Stripe events."""

    def __init__(
        self,
        fetcher_factory: Optional[Callable[[], Optional[StripeEventFetcher]]] = None,
        interval_s: Optional[float] = None,
        initial_delay_s: Optional[float] = None,
    ) -> None:
        self._fetcher_factory = fetcher_factory or build_stripe_event_fetcher
        self._interval_s = settings.stripe_poll_interval_s if interval_s is None else interval_s
        self._initial_delay_s = (
            settings.stripe_initial_poll_delay_s if initial_delay_s is None else initial_delay_s
        )
        self._fetcher: Optional[StripeEventFetcher] = None
        self._task: Optional[asyncio.Task] = None

        self.state: str = IDLE
        self.cycles_run: int = 0
        self.last_started_at: Optional[datetime] = None
        self.last_completed_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_summary: Optional[PollSummary] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Spawn the loop. Returns False (polling disabled) if Stripe is not configured."""
        if self.running:
            return True

        fetcher = self._fetcher_factory()
        if fetcher is None:
            logger.warning(
                "Stripe is not configured; event polling disabled. "
                "Set BILLSYNC_STRIPE_SECRET_KEY to enable billing sync."
            )
            return False

        self._fetcher = fetcher
        self._task = asyncio.create_task(self._poll_loop(), name="stripe-event-poller")
        logger.info("Stripe event poller started (interval=%ss)", self._interval_s)
        return True

    async def stop(self) -> None:
        """Cancel the background loop."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def poll_once(self) -> PollSummary:
        """Run one complete poll cycle. Errors propagate to the caller."""
        if self._fetcher is None:
            self._fetcher = self._fetcher_factory()
            if self._fetcher is None:
                raise StripeNotConfigured()

        token = poll_cycle_id_var.set(uuid.uuid4().hex[:12])
        self.state = POLLING
        self.cycles_run += 1
        self.last_started_at = datetime.now(timezone.utc)
        logger.info("Stripe event poll cycle started")
        try:
            summary = await self._fetcher.fetch_and_process()
        except Exception as exc:
            self.last_error = f"{type(exc).__name__}: {exc}"
            raise
        else:
            self.last_error = None
            self.last_summary = summary
            self.last_completed_at = datetime.now(timezone.utc)
            logger.info("Stripe event poll cycle completed", extra=summary.as_dict())
            return summary
        finally:
            self.state = IDLE
            poll_cycle_id_var.reset(token)

    async def _poll_loop(self) -> None:
        try:
            if self._initial_delay_s:
                await asyncio.sleep(self._initial_delay_s)
            while True:
                try:
                    await self.poll_once()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Stripe event poll cycle failed; retrying next cycle")
                await asyncio.sleep(self._interval_s)
        except asyncio.CancelledError:
            logger.info("Stripe event poller cancelled")
            raise

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "state": self.state,
            "interval_s": self._interval_s,
            "cycles_run": self.cycles_run,
            "last_started_at": _iso(self.last_started_at),
            "last_completed_at": _iso(self.last_completed_at),
            "last_error": self.last_error,
            "last_summary": self.last_summary.as_dict() if self.last_summary else None,
        }


# Module-level singleton
_poller: Optional[StripeEventPoller] = None


def get_stripe_event_poller() -> StripeEventPoller:
    global _poller
    if _poller is None:
        _poller = StripeEventPoller()
    return _poller
