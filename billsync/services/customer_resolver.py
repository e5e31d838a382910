"""
Customer Resolver — Stripe customer → local BillingCustomer
===========================================================

Resolution order for ``find_or_create_billing_customer(customer_or_id)``:

1. Take the Stripe customer ID from the reference (a bare ID string or an
   already-expanded ``stripe.Customer``).
2. Existing BillingCustomer for that ID → return it. No Stripe call, no write.
3. Bare ID → retrieve the full customer from Stripe.
4. Customer has no email → None.
5. No local user with that email → None.
6. Otherwise create the BillingCustomer linking user and Stripe customer.

Returning None is a normal outcome (the Stripe customer belongs to no
account here yet). Stripe and store errors propagate to the caller.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

import stripe

from billsync.core.async_utils import run_sync
from billsync.models import BillingCustomer
from billsync.services.billing_store import BillingStore
from billsync.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

CustomerRef = Union[str, stripe.Customer]


def stripe_customer_id_of(customer_or_id: CustomerRef) -> str:
    if isinstance(customer_or_id, str):
        return customer_or_id
    return customer_or_id.id


class CustomerResolver:
    def __init__(self, store: BillingStore, gateway: StripeGateway) -> None:
        self._store = store
        self._gateway = gateway

    async def find_or_create_billing_customer(
        self, customer_or_id: CustomerRef
    ) -> Optional[BillingCustomer]:
        customer_id = stripe_customer_id_of(customer_or_id)

        existing = await run_sync(
            self._store.get_billing_customer_by_stripe_customer_id, customer_id
        )
        if existing is not None:
            return existing

        if isinstance(customer_or_id, str):
            customer = await self._gateway.fetch_customer(customer_id)
        else:
            customer = customer_or_id

        email = getattr(customer, "email", None)
        if not email:
            logger.debug("Stripe customer %s has no email; not linking", customer_id)
            return None

        user = await run_sync(self._store.get_user_by_email, email)
        if user is None:
            logger.debug("No local user for Stripe customer %s", customer_id)
            return None

        return await run_sync(self._store.create_billing_customer, user.id, customer_id)
