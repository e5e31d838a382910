"""
Error code system.

BillSyncError is the base exception for all structured errors.
Raise it with an error code from the registry; HTTP routes turn it into a
structured JSON response, and the event poller logs it with its code.

Usage:
    from billsync.core.errors import BillSyncError
    raise BillSyncError("BSY-API-001", detail="user 42 not found")
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^BSY-[A-Z]{2,6}-\d{3}$")


class BillSyncError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "BSY-EVT-001".
        detail: Internal-only detail message (never exposed to users).
        context: Arbitrary key-value context for structured logging.
    """

    def __init__(
        self,
        code: str,
        detail: str | None = None,
        context: dict | None = None,
    ) -> None:
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class StripeNotConfigured(BillSyncError):
    def __init__(self, detail: str | None = None) -> None:
        super().__init__("BSY-CFG-001", detail=detail or "Stripe is not configured")


class UnexpectedEventPayload(BillSyncError):
    """The event's embedded object does not match its declared type."""

    def __init__(self, event_id: str, event_type: str, object_type: str | None) -> None:
        super().__init__(
            "BSY-EVT-001",
            detail=f"unexpected event payload for {event_id}",
            context={"event_id": event_id, "event_type": event_type, "object_type": object_type},
        )


class BillingCustomerNotFound(BillSyncError):
    """A subscription's Stripe customer has no matching local user."""

    def __init__(self, stripe_customer_id: str) -> None:
        super().__init__(
            "BSY-EVT-002",
            detail=f"billing customer not found for {stripe_customer_id}",
            context={"stripe_customer_id": stripe_customer_id},
        )


class UnknownSubscriptionStatus(BillSyncError):
    def __init__(self, status: object) -> None:
        super().__init__(
            "BSY-STR-002",
            detail=f"unknown Stripe subscription status: {status!r}",
            context={"status": status},
        )
