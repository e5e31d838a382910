"""
Event Dispatcher — route one Stripe event to the resolver / upserter
====================================================================

ROUTING:
    customer.created                         → CustomerResolver
    customer.subscription.created|updated|
      paused|resumed|deleted                 → CustomerResolver, then
                                               SubscriptionUpserter
    anything else                            → ignored

ISOLATION:
    ``dispatch()`` never raises (cancellation aside): a failure while
    handling one event is logged with the event's id and type and the
    caller moves on to the next event.
"""

from __future__ import annotations

import logging

import stripe

from billsync.core.errors import (
    BillingCustomerNotFound,
    BillSyncError,
    UnexpectedEventPayload,
)
from billsync.services.customer_resolver import CustomerResolver, stripe_customer_id_of
from billsync.services.subscription_sync import SubscriptionUpserter

logger = logging.getLogger(__name__)

CUSTOMER_CREATED = "customer.created"
SUBSCRIPTION_EVENT_TYPES = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.paused",
    "customer.subscription.resumed",
    "customer.subscription.deleted",
)


def _event_object(event: stripe.Event):
    data = getattr(event, "data", None)
    return getattr(data, "object", None)


def _object_type(obj) -> str | None:
    if obj is None:
        return None
    return getattr(obj, "object", None) or type(obj).__name__


class EventDispatcher:
    def __init__(self, resolver: CustomerResolver, upserter: SubscriptionUpserter) -> None:
        self._resolver = resolver
        self._upserter = upserter

    async def dispatch(self, event: stripe.Event) -> bool:
        """Handle one event; returns False (after logging) if handling failed."""
        event_id = getattr(event, "id", None)
        event_type = getattr(event, "type", None)
        try:
            await self.handle(event)
            return True
        except BillSyncError as exc:
            logger.warning(
                "Failed to handle Stripe event %s (%s): %s",
                event_id, event_type, exc,
                extra={"error.code": exc.code, **{f"error.ctx.{k}": v for k, v in exc.context.items()}},
            )
        except Exception:
            logger.exception("Failed to handle Stripe event %s (%s)", event_id, event_type)
        return False

    async def handle(self, event: stripe.Event) -> None:
        event_type = event.type
        if event_type == CUSTOMER_CREATED:
            await self._handle_customer_event(event)
        elif event_type in SUBSCRIPTION_EVENT_TYPES:
            await self._handle_customer_subscription_event(event)

    async def _handle_customer_event(self, event: stripe.Event) -> None:
        customer = _event_object(event)
        if not isinstance(customer, stripe.Customer):
            raise UnexpectedEventPayload(event.id, event.type, _object_type(customer))

        # None just means no local user owns this customer yet
        await self._resolver.find_or_create_billing_customer(customer)

    async def _handle_customer_subscription_event(self, event: stripe.Event) -> None:
        subscription = _event_object(event)
        if not isinstance(subscription, stripe.Subscription):
            raise UnexpectedEventPayload(event.id, event.type, _object_type(subscription))

        customer_ref = getattr(subscription, "customer", None)
        if not isinstance(customer_ref, (str, stripe.Customer)):
            raise UnexpectedEventPayload(event.id, event.type, _object_type(customer_ref))

        billing_customer = await self._resolver.find_or_create_billing_customer(customer_ref)
        if billing_customer is None:
            raise BillingCustomerNotFound(stripe_customer_id_of(customer_ref))

        await self._upserter.upsert(
            billing_customer.id,
            subscription.id,
            getattr(subscription, "status", None),
        )
