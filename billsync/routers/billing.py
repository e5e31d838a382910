"""
Billing Router
==============

Thin pass-throughs to Stripe for starting and managing a subscription:

1. POST /api/billing/subscriptions         — Stripe Checkout session URL
2. POST /api/billing/subscriptions/manage  — Stripe customer portal session URL

Neither endpoint writes subscription state: the event poller picks up the
resulting Stripe events and reconciles the local tables.
"""

import logging
from enum import Enum
from typing import Optional

import stripe
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from billsync.config import settings
from billsync.core.async_utils import run_sync
from billsync.core.errors import BillSyncError, StripeNotConfigured
from billsync.models import BillingCustomer, BillingSubscription, User
from billsync.services.billing_store import BillingStore
from billsync.services.stripe_gateway import StripeGateway, get_stripe_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class CreateBillingSubscriptionRequest(BaseModel):
    user_id: int


class CreateBillingSubscriptionResponse(BaseModel):
    checkout_session_url: str


class ManageSubscriptionIntent(str, Enum):
    # The user intends to cancel their subscription.
    CANCEL = "cancel"


class ManageBillingSubscriptionRequest(BaseModel):
    user_id: int
    intent: ManageSubscriptionIntent
    subscription_id: Optional[int] = Field(
        default=None,
        description="Subscription to manage. Defaults to the user's only active subscription.",
    )


class ManageBillingSubscriptionResponse(BaseModel):
    billing_portal_session_url: str


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_billing_store() -> BillingStore:
    return BillingStore()


def get_gateway() -> Optional[StripeGateway]:
    return get_stripe_gateway()


async def _get_user(store: BillingStore, user_id: int) -> User:
    user = await run_sync(store.get_user_by_id, user_id)
    if user is None:
        raise BillSyncError("BSY-API-001", detail=f"user {user_id} not found")
    return user


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/billing/subscriptions",
    response_model=CreateBillingSubscriptionResponse,
    summary="Start a subscription",
    description="Creates a Stripe Checkout session for the configured price and returns its URL.",
)
async def create_billing_subscription(
    body: CreateBillingSubscriptionRequest,
    store: BillingStore = Depends(get_billing_store),
    gateway: Optional[StripeGateway] = Depends(get_gateway),
):
    user = await _get_user(store, body.user_id)

    if gateway is None or not settings.stripe_price_id:
        raise StripeNotConfigured("Stripe client or price ID missing")

    try:
        existing: Optional[BillingCustomer] = await run_sync(
            store.get_billing_customer_by_user_id, user.id
        )
        if existing is not None:
            customer_id = existing.stripe_customer_id
        else:
            customer_id = (await gateway.create_customer(user.email_address)).id

        session = await gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=settings.stripe_price_id,
            client_reference_id=user.username,
            success_url=settings.billing_success_url,
        )
    except stripe.StripeError as exc:
        raise BillSyncError("BSY-STR-001", detail=str(exc), context={"user_id": user.id}) from exc

    if not session.url:
        raise BillSyncError("BSY-STR-001", detail="no checkout session URL")

    return CreateBillingSubscriptionResponse(checkout_session_url=session.url)


@router.post(
    "/billing/subscriptions/manage",
    response_model=ManageBillingSubscriptionResponse,
    summary="Manage a subscription",
    description="Creates a Stripe customer portal session for the given intent and returns its URL.",
)
async def manage_billing_subscription(
    body: ManageBillingSubscriptionRequest,
    store: BillingStore = Depends(get_billing_store),
    gateway: Optional[StripeGateway] = Depends(get_gateway),
):
    user = await _get_user(store, body.user_id)

    if gateway is None:
        raise StripeNotConfigured("Stripe client missing")

    # Gates BSY-API-002 only; the portal uses the customer that owns the chosen subscription
    if await run_sync(store.get_billing_customer_by_user_id, user.id) is None:
        raise BillSyncError("BSY-API-002", detail=f"no billing customer for user {user.id}")

    subscription, customer = await _resolve_subscription(store, user, body.subscription_id)

    try:
        session = await gateway.create_billing_portal_session(
            customer_id=customer.stripe_customer_id,
            return_url=settings.billing_return_url,
            flow_data=_portal_flow_data(body.intent, subscription),
        )
    except stripe.StripeError as exc:
        raise BillSyncError("BSY-STR-001", detail=str(exc), context={"user_id": user.id}) from exc

    return ManageBillingSubscriptionResponse(billing_portal_session_url=session.url)


def _portal_flow_data(intent: ManageSubscriptionIntent, subscription: BillingSubscription) -> dict:
    match intent:
        case ManageSubscriptionIntent.CANCEL:
            return {
                "type": "subscription_cancel",
                "after_completion": {
                    "type": "redirect",
                    "redirect": {"return_url": settings.billing_return_url},
                },
                "subscription_cancel": {"subscription": subscription.stripe_subscription_id},
            }


async def _resolve_subscription(
    store: BillingStore, user: User, subscription_id: Optional[int]
) -> tuple[BillingSubscription, BillingCustomer]:
    """The subscription to manage and the billing customer that owns it."""
    if subscription_id is not None:
        subscription = await run_sync(store.get_billing_subscription_by_id, subscription_id)
        if subscription is None:
            raise BillSyncError("BSY-API-003", detail=f"subscription {subscription_id} not found")
    else:
        subscriptions = await run_sync(store.get_active_billing_subscriptions, user.id)
        if len(subscriptions) > 1:
            raise BillSyncError("BSY-API-004", detail=f"user {user.id} has multiple active subscriptions")
        if not subscriptions:
            raise BillSyncError("BSY-API-005", detail=f"user {user.id} has no active subscriptions")
        subscription = subscriptions[0]

    customer = await run_sync(store.get_billing_customer_by_id, subscription.billing_customer_id)
    if customer is None or customer.user_id != user.id:
        # Another user's subscription is reported as missing
        raise BillSyncError("BSY-API-003", detail=f"subscription {subscription.id} not owned by user {user.id}")
    return subscription, customer
