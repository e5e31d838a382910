"""
billsync Application Configuration
==================================

PURPOSE:
    Pydantic-Settings based configuration for the billing sync service.
    All settings can be overridden via environment variables (BILLSYNC_ prefix).

    Stripe credentials are optional: without BILLSYNC_STRIPE_SECRET_KEY the
    event poller stays disabled and the checkout endpoints answer 501.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "billsync"
    debug: bool = False

    # Persistent state (SQLite default lives here unless DATABASE_URL is set)
    data_directory: str = "/data"

    # Logging
    log_directory: str = "logs"
    log_level: str = "INFO"

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_price_id: Optional[str] = None

    # Event polling
    stripe_poll_interval_s: int = 300  # 5 minutes
    stripe_events_page_size: int = 100  # Stripe's maximum page size
    stripe_initial_poll_delay_s: int = 0

    # Redirect targets for checkout / customer portal sessions
    billing_success_url: str = "https://example.com/billing/success"
    billing_return_url: str = "https://example.com/billing"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"
        env_prefix = "BILLSYNC_"

    @property
    def stripe_configured(self) -> bool:
        """True when a Stripe secret key is available."""
        return bool(self.stripe_secret_key)


settings = Settings()
