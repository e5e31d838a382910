from billsync.models.billing import BillingCustomer, BillingSubscription, SubscriptionStatus
from billsync.models.user import User

__all__ = ["BillingCustomer", "BillingSubscription", "SubscriptionStatus", "User"]
