"""
Billing Models
==============

SQLModel tables for the local copy of Stripe billing state:
- BillingCustomer: links a local user to a Stripe customer.
- BillingSubscription: one row per Stripe subscription, keyed by its Stripe ID.

Rows are written by the event poller (see billsync.services.event_poller);
Stripe remains the source of truth.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class SubscriptionStatus(str, Enum):
    """Status of a Stripe subscription as stored locally.

    https://docs.stripe.com/api/subscriptions/object#subscription_object-status
    """

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


class BillingCustomer(SQLModel, table=True):
    """A local user's Stripe customer record. Never mutated after creation."""

    __tablename__ = "billing_customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True, foreign_key="users.id")
    stripe_customer_id: str = Field(unique=True, index=True, max_length=255)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BillingSubscription(SQLModel, table=True):
    __tablename__ = "billing_subscriptions"

    id: Optional[int] = Field(default=None, primary_key=True)
    billing_customer_id: int = Field(index=True, foreign_key="billing_customers.id")
    stripe_subscription_id: str = Field(unique=True, index=True, max_length=255)
    stripe_subscription_status: str = Field(max_length=32)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> SubscriptionStatus:
        return SubscriptionStatus(self.stripe_subscription_status)
