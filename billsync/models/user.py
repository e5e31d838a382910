"""
User Model
==========

Local user accounts. Owned by the wider application; billsync only reads
them to link Stripe customers to users by email address.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True, max_length=255)
    email_address: Optional[str] = Field(default=None, index=True, nullable=True, max_length=255)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
