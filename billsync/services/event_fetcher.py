"""
Paginated Event Fetcher — one walk over Stripe's event feed
===========================================================

``fetch_and_process()`` asks Stripe for the allow-listed event types
(filtered server-side) and follows ``has_more`` with
``starting_after=<last event id>`` until Stripe reports no further pages.

Stripe lists events newest first and ``starting_after`` walks further into
the past, so the whole walk is collected before anything is applied, then
dispatched oldest first (by ``created``). Each subscription row therefore
ends the cycle holding the status of its most recent event.

Each call is a fresh walk of the feed as it is then; re-processing an
event is harmless because every write is idempotent. A failed page
request propagates before any event of the walk is applied (the next
cycle re-lists); a failed event is absorbed by the dispatcher.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import stripe

from billsync.services.event_dispatcher import (
    CUSTOMER_CREATED,
    SUBSCRIPTION_EVENT_TYPES,
    EventDispatcher,
)
from billsync.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

STRIPE_EVENT_TYPES: tuple[str, ...] = (CUSTOMER_CREATED, *SUBSCRIPTION_EVENT_TYPES)
DEFAULT_PAGE_SIZE = 100


@dataclass
class PollSummary:
    pages: int = 0
    events_seen: int = 0
    events_handled: int = 0
    events_failed: int = 0

    def as_dict(self) -> dict:
        return {
            "pages": self.pages,
            "events_seen": self.events_seen,
            "events_handled": self.events_handled,
            "events_failed": self.events_failed,
        }


class StripeEventFetcher:
    def __init__(
        self,
        gateway: StripeGateway,
        dispatcher: EventDispatcher,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._page_size = page_size

    async def fetch_and_process(self) -> PollSummary:
        summary = PollSummary()
        walk = await self._walk(summary)

        for event in oldest_first(walk):
            if await self._dispatcher.dispatch(event):
                summary.events_handled += 1
            else:
                summary.events_failed += 1

        return summary

    async def _walk(self, summary: PollSummary) -> List[stripe.Event]:
        """Every page of the feed, in Stripe's (newest first) order."""
        events: List[stripe.Event] = []
        starting_after: Optional[str] = None

        while True:
            logger.info(
                "Retrieving events from Stripe: %s",
                ", ".join(STRIPE_EVENT_TYPES),
                extra={"starting_after": starting_after, "page": summary.pages + 1},
            )
            page = await self._gateway.list_events(
                STRIPE_EVENT_TYPES,
                limit=self._page_size,
                starting_after=starting_after,
            )
            summary.pages += 1
            summary.events_seen += len(page.events)
            events.extend(page.events)

            if not page.has_more or not page.events:
                return events
            starting_after = page.events[-1].id


def oldest_first(events: Sequence[stripe.Event]) -> List[stripe.Event]:
    """Reorder a newest-first walk for application.

    Events sharing a ``created`` second keep the reverse of their listing
    order, which is the order Stripe emitted them in.
    """
    return sorted(reversed(events), key=lambda event: getattr(event, "created", None) or 0)
