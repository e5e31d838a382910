"""
Billing Store — local CRUD for users, billing customers and subscriptions
=========================================================================

PURPOSE:
    The narrow storage interface the reconciliation engine and the billing
    endpoints depend on. Every method opens its own session/connection
    (per-operation isolation) and is synchronous; async callers go through
    run_sync().

IDEMPOTENCY:
    - create_billing_customer() is a conditional insert: if another writer
      already stored the same Stripe customer ID, the existing row is
      returned instead of raising.
    - upsert_billing_subscription_by_stripe_subscription_id() is a single
      INSERT ... ON CONFLICT (stripe_subscription_id) DO UPDATE using the
      dialect's native upsert, so concurrent pollers cannot create
      duplicate rows.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session as SQLModelSession, select

from billsync.core.database import get_engine, sqlite_retry
from billsync.models import BillingCustomer, BillingSubscription, SubscriptionStatus, User

logger = logging.getLogger(__name__)


def _dialect_insert(dialect_name: str):
    """Return the dialect-specific ``insert`` that supports ON CONFLICT."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"native upsert not supported for dialect {dialect_name!r}")
    return insert


class BillingStore:
    """SQLModel-backed billing storage."""

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    def _session(self) -> SQLModelSession:
        return SQLModelSession(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._session() as session:
            stmt = select(User).where(User.email_address == email)
            return session.exec(stmt).first()

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        with self._session() as session:
            return session.get(User, user_id)

    # ------------------------------------------------------------------
    # Billing customers
    # ------------------------------------------------------------------

    def get_billing_customer_by_id(self, billing_customer_id: int) -> Optional[BillingCustomer]:
        with self._session() as session:
            return session.get(BillingCustomer, billing_customer_id)

    def get_billing_customer_by_stripe_customer_id(
        self, stripe_customer_id: str
    ) -> Optional[BillingCustomer]:
        with self._session() as session:
            stmt = select(BillingCustomer).where(
                BillingCustomer.stripe_customer_id == stripe_customer_id
            )
            return session.exec(stmt).first()

    def get_billing_customer_by_user_id(self, user_id: int) -> Optional[BillingCustomer]:
        """Oldest billing customer for the user, if any."""
        with self._session() as session:
            stmt = (
                select(BillingCustomer)
                .where(BillingCustomer.user_id == user_id)
                .order_by(BillingCustomer.id)
            )
            return session.exec(stmt).first()

    def create_billing_customer(self, user_id: int, stripe_customer_id: str) -> BillingCustomer:
        """
        Insert a billing customer, or return the existing row when the
        Stripe customer ID is already stored.
        """

        def _create() -> BillingCustomer:
            with self._session() as session:
                row = BillingCustomer(user_id=user_id, stripe_customer_id=stripe_customer_id)
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    existing = self.get_billing_customer_by_stripe_customer_id(stripe_customer_id)
                    if existing is None:
                        raise
                    logger.info(
                        "Billing customer for %s already exists (id=%s)",
                        stripe_customer_id, existing.id,
                    )
                    return existing
                session.refresh(row)
                logger.info(
                    "Created billing customer id=%s user_id=%s stripe_customer_id=%s",
                    row.id, user_id, stripe_customer_id,
                )
                return row

        return sqlite_retry(_create)

    # ------------------------------------------------------------------
    # Billing subscriptions
    # ------------------------------------------------------------------

    def upsert_billing_subscription_by_stripe_subscription_id(
        self,
        billing_customer_id: int,
        stripe_subscription_id: str,
        status: SubscriptionStatus,
    ) -> None:
        """Insert or update the subscription row keyed by its Stripe ID, atomically."""
        table = BillingSubscription.__table__
        insert = _dialect_insert(self.engine.dialect.name)

        stmt = insert(table).values(
            billing_customer_id=billing_customer_id,
            stripe_subscription_id=stripe_subscription_id,
            stripe_subscription_status=SubscriptionStatus(status).value,
            created_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.stripe_subscription_id],
            set_={
                "billing_customer_id": stmt.excluded.billing_customer_id,
                "stripe_subscription_status": stmt.excluded.stripe_subscription_status,
            },
        )

        def _execute() -> None:
            with self.engine.begin() as conn:
                conn.execute(stmt)

        sqlite_retry(_execute)
        logger.debug(
            "Upserted subscription %s status=%s billing_customer_id=%s",
            stripe_subscription_id, SubscriptionStatus(status).value, billing_customer_id,
        )

    def get_billing_subscription_by_id(self, subscription_id: int) -> Optional[BillingSubscription]:
        with self._session() as session:
            return session.get(BillingSubscription, subscription_id)

    def get_billing_subscription_by_stripe_subscription_id(
        self, stripe_subscription_id: str
    ) -> Optional[BillingSubscription]:
        with self._session() as session:
            stmt = select(BillingSubscription).where(
                BillingSubscription.stripe_subscription_id == stripe_subscription_id
            )
            return session.exec(stmt).first()

    def get_active_billing_subscriptions(self, user_id: int) -> List[BillingSubscription]:
        """Subscriptions in ``active`` status across all of the user's billing customers."""
        with self._session() as session:
            stmt = (
                select(BillingSubscription)
                .join(BillingCustomer, BillingSubscription.billing_customer_id == BillingCustomer.id)
                .where(BillingCustomer.user_id == user_id)
                .where(BillingSubscription.stripe_subscription_status == SubscriptionStatus.ACTIVE.value)
                .order_by(BillingSubscription.id)
            )
            return list(session.exec(stmt).all())
