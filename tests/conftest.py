"""
Pytest configuration for billsync tests.
Points data/log directories at a temp dir and leaves Stripe unconfigured.
"""

import os
import tempfile

# Must be set before any billsync import (settings are read at import time)
_test_data_dir = tempfile.mkdtemp(prefix="billsync_test_")
os.environ.setdefault("BILLSYNC_DATA_DIRECTORY", _test_data_dir)
os.environ.setdefault("BILLSYNC_LOG_DIRECTORY", os.path.join(_test_data_dir, "logs"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_data_dir}/test.db")
os.environ.pop("BILLSYNC_STRIPE_SECRET_KEY", None)
os.environ.pop("BILLSYNC_STRIPE_PRICE_ID", None)

import pytest
from sqlmodel import Session, SQLModel, func, select

from billsync.core.database import build_engine
from billsync.core.errors.registry import error_registry
from billsync.models import User
from billsync.services.billing_store import BillingStore

# Load error registry so BillSyncError returns correct HTTP status codes
error_registry.load()


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite database per test."""
    eng = build_engine(f"sqlite:///{tmp_path}/billing.db")
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine):
    return BillingStore(engine=engine)


@pytest.fixture
def make_user(engine):
    def _make_user(username: str, email: str | None = None) -> User:
        with Session(engine) as session:
            user = User(username=username, email_address=email)
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def count_rows(engine):
    def _count(model) -> int:
        with Session(engine) as session:
            return session.exec(select(func.count()).select_from(model)).one()

    return _count
