"""Tests for SubscriptionUpserter."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from billsync.core.errors import BillSyncError, UnknownSubscriptionStatus
from billsync.models import BillingSubscription, SubscriptionStatus
from billsync.services.billing_store import BillingStore
from billsync.services.subscription_sync import SubscriptionUpserter


@pytest.fixture
def billing_customer(store, make_user):
    user = make_user("alice", "a@example.com")
    return store.create_billing_customer(user.id, "cus_1")


@pytest.mark.asyncio
async def test_upsert_maps_status(store, billing_customer):
    await SubscriptionUpserter(store).upsert(billing_customer.id, "sub_1", "unpaid")

    row = store.get_billing_subscription_by_stripe_subscription_id("sub_1")
    assert row.status is SubscriptionStatus.UNPAID


@pytest.mark.asyncio
async def test_latest_status_wins(store, billing_customer, count_rows):
    upserter = SubscriptionUpserter(store)
    for status in ("incomplete", "active", "past_due", "canceled"):
        await upserter.upsert(billing_customer.id, "sub_1", status)

    assert count_rows(BillingSubscription) == 1
    row = store.get_billing_subscription_by_stripe_subscription_id("sub_1")
    assert row.status is SubscriptionStatus.CANCELED


@pytest.mark.asyncio
async def test_unknown_status_writes_nothing(store, billing_customer, count_rows):
    with pytest.raises(UnknownSubscriptionStatus):
        await SubscriptionUpserter(store).upsert(billing_customer.id, "sub_1", "ended")
    assert count_rows(BillingSubscription) == 0


@pytest.mark.asyncio
async def test_store_failure_becomes_structured_error():
    store = MagicMock(spec=BillingStore)
    store.upsert_billing_subscription_by_stripe_subscription_id.side_effect = OperationalError(
        "INSERT", {}, Exception("disk I/O error")
    )

    with pytest.raises(BillSyncError) as exc_info:
        await SubscriptionUpserter(store).upsert(1, "sub_1", "active")

    assert exc_info.value.code == "BSY-DB-001"
    assert exc_info.value.context == {"stripe_subscription_id": "sub_1", "billing_customer_id": 1}
