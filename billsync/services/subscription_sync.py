"""
Subscription Upserter — write one Stripe subscription into the local store.

The write is a single atomic upsert keyed by the Stripe subscription ID,
so repeated events for the same subscription update the status in place.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from billsync.core.async_utils import run_sync
from billsync.core.errors import BillSyncError
from billsync.services.billing_store import BillingStore
from billsync.services.status_mapping import (
    map_stripe_subscription_status,
    parse_stripe_subscription_status,
)

logger = logging.getLogger(__name__)


class SubscriptionUpserter:
    def __init__(self, store: BillingStore) -> None:
        self._store = store

    async def upsert(
        self,
        billing_customer_id: int,
        stripe_subscription_id: str,
        stripe_status: object,
    ) -> None:
        """Insert or update the subscription; raises BillSyncError on failure."""
        status = map_stripe_subscription_status(parse_stripe_subscription_status(stripe_status))
        try:
            await run_sync(
                self._store.upsert_billing_subscription_by_stripe_subscription_id,
                billing_customer_id,
                stripe_subscription_id,
                status,
            )
        except SQLAlchemyError as exc:
            raise BillSyncError(
                "BSY-DB-001",
                detail=f"upsert of subscription {stripe_subscription_id} failed: {exc}",
                context={
                    "stripe_subscription_id": stripe_subscription_id,
                    "billing_customer_id": billing_customer_id,
                },
            ) from exc

        logger.info(
            "Synced subscription %s status=%s billing_customer_id=%s",
            stripe_subscription_id, status.value, billing_customer_id,
        )
