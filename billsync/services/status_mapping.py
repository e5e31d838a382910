"""
Stripe subscription status → local SubscriptionStatus.

The Stripe vocabulary is modelled as a Literal and matched case by case
with no wildcard arm; ``assert_never`` makes a type checker reject the
module as soon as a new Stripe status is added to ``StripeStatus`` without
a matching case here.
"""

from __future__ import annotations

from typing import Literal, assert_never, get_args

from billsync.core.errors import UnknownSubscriptionStatus
from billsync.models import SubscriptionStatus

StripeStatus = Literal[
    "incomplete",
    "incomplete_expired",
    "trialing",
    "active",
    "past_due",
    "canceled",
    "unpaid",
    "paused",
]

STRIPE_STATUSES: frozenset[str] = frozenset(get_args(StripeStatus))


def parse_stripe_subscription_status(raw: object) -> StripeStatus:
    """Narrow a raw SDK value to ``StripeStatus``; anything else is a per-event failure."""
    if isinstance(raw, str) and raw in STRIPE_STATUSES:
        return raw  # type: ignore[return-value]
    raise UnknownSubscriptionStatus(raw)


def map_stripe_subscription_status(status: StripeStatus) -> SubscriptionStatus:
    match status:
        case "incomplete":
            return SubscriptionStatus.INCOMPLETE
        case "incomplete_expired":
            return SubscriptionStatus.INCOMPLETE_EXPIRED
        case "trialing":
            return SubscriptionStatus.TRIALING
        case "active":
            return SubscriptionStatus.ACTIVE
        case "past_due":
            return SubscriptionStatus.PAST_DUE
        case "canceled":
            return SubscriptionStatus.CANCELED
        case "unpaid":
            return SubscriptionStatus.UNPAID
        case "paused":
            return SubscriptionStatus.PAUSED
        case _:
            assert_never(status)
