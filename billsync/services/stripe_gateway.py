"""
Stripe Gateway — async facade over the Stripe SDK
=================================================

PURPOSE:
    The only module that talks to Stripe. Wraps the synchronous ``stripe``
    SDK and offloads every request to a worker thread via run_sync(), so
    the event poller and the HTTP endpoints never block the event loop.

    The API key is passed per request rather than set globally on the
    ``stripe`` module, so tests and multiple gateways never interfere.

ERRORS:
    Every method lets ``stripe.StripeError`` (not found, auth, network)
    propagate; callers decide whether that ends a poll cycle or a request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import stripe

from billsync.config import settings
from billsync.core.async_utils import run_sync

logger = logging.getLogger(__name__)

__all__ = ["EventPage", "StripeGateway", "get_stripe_gateway"]

STRIPE_REQUEST_TIMEOUT_S = 60


@dataclass(frozen=True)
class EventPage:
    """One page of ``GET /v1/events``."""
    events: List[stripe.Event] = field(default_factory=list)
    has_more: bool = False


class StripeGateway:
    """Async wrapper around the Stripe endpoints billsync uses."""

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ValueError("Stripe API key is required")
        self._api_key = api_key

    async def _call(self, func, **params: Any) -> Any:
        return await run_sync(func, timeout=STRIPE_REQUEST_TIMEOUT_S, api_key=self._api_key, **params)

    # ------------------------------------------------------------------
    # Reads used by the reconciliation engine
    # ------------------------------------------------------------------

    async def fetch_customer(self, customer_id: str) -> stripe.Customer:
        """Retrieve a full customer record. Raises on not-found or transport error."""
        return await self._call(stripe.Customer.retrieve, id=customer_id)

    async def list_events(
        self,
        types: Sequence[str],
        limit: int = 100,
        starting_after: Optional[str] = None,
    ) -> EventPage:
        """List events of the given types, newest first, one page at a time."""
        params: Dict[str, Any] = {"types": list(types), "limit": limit}
        if starting_after:
            params["starting_after"] = starting_after

        result = await self._call(stripe.Event.list, **params)
        return EventPage(events=list(result.data), has_more=bool(result.has_more))

    # ------------------------------------------------------------------
    # Writes used by the billing endpoints
    # ------------------------------------------------------------------

    async def create_customer(self, email: Optional[str]) -> stripe.Customer:
        params: Dict[str, Any] = {}
        if email:
            params["email"] = email
        customer = await self._call(stripe.Customer.create, **params)
        logger.info("Created Stripe customer %s", customer.id)
        return customer

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        client_reference_id: str,
        success_url: str,
    ) -> stripe.checkout.Session:
        return await self._call(
            stripe.checkout.Session.create,
            mode="subscription",
            customer=customer_id,
            client_reference_id=client_reference_id,
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
        )

    async def create_billing_portal_session(
        self,
        customer_id: str,
        return_url: str,
        flow_data: Optional[Dict[str, Any]] = None,
    ) -> stripe.billing_portal.Session:
        params: Dict[str, Any] = {"customer": customer_id, "return_url": return_url}
        if flow_data:
            params["flow_data"] = flow_data
        return await self._call(stripe.billing_portal.Session.create, **params)


def get_stripe_gateway() -> Optional[StripeGateway]:
    """Gateway built from settings, or None when Stripe is not configured."""
    if not settings.stripe_configured:
        return None
    return StripeGateway(settings.stripe_secret_key)
