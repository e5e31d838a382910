"""Builders for Stripe objects as the SDK would deserialize them."""

import stripe

TEST_API_KEY = "sk_test_billsync"


def customer_payload(customer_id: str, email: str | None = None) -> dict:
    return {"id": customer_id, "object": "customer", "email": email}


def subscription_payload(subscription_id: str, customer, status: str = "active") -> dict:
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
    }


def make_customer(customer_id: str, email: str | None = None) -> stripe.Customer:
    return stripe.Customer.construct_from(customer_payload(customer_id, email), TEST_API_KEY)


def make_event(event_id: str, event_type: str, obj: dict, created: int = 1_700_000_000) -> stripe.Event:
    return stripe.Event.construct_from(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": created,
            "data": {"object": obj},
        },
        TEST_API_KEY,
    )
