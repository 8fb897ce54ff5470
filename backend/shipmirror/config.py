from pydantic_settings import BaseSettings
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    DEBUG: bool = False

    # DATABASE_URL must be provided via environment (Postgres in production,
    # sqlite is accepted for local runs).
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Fulfillment provider API. PROVIDER_NAME is the tag stored on
    # client_api_credentials rows for this provider.
    PROVIDER_NAME: str = "shipbob"
    PROVIDER_API_BASE_URL: str = os.getenv("PROVIDER_API_BASE_URL", "https://api.shipbob.com/2025-07")
    # Account-level token used for the global transaction feed. When missing,
    # transactions are pulled per client with each client's own credential.
    PROVIDER_PARENT_TOKEN: Optional[str] = None
    # Published limit is 150 requests/minute per token -> 400ms between calls.
    PROVIDER_REQUESTS_PER_MINUTE: int = 150
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    ORDERS_PAGE_SIZE: int = 250
    TRANSACTIONS_PAGE_SIZE: int = 1000
    RECEIVING_PAGE_SIZE: int = 100
    # Hard cap on pages per collection per run; reaching it marks the listing
    # as incomplete.
    MAX_PAGES: int = 200

    # Cadence parameters. The lookback windows are empirical and meant to be
    # tuned against observed upstream latency.
    SYNC_MINUTES_BACK: int = 5
    SYNC_OVERLAP_MINUTES: int = 5
    SYNC_MAX_WINDOW_HOURS: int = 24
    RECONCILE_DAYS_BACK: int = 20
    # When enabled, each reconciliation candidate is re-checked with a
    # single-resource GET and only soft-deleted on 404.
    RECONCILE_VERIFY_CANDIDATES: bool = False
    TRANSACTIONS_DAYS_BACK: int = 3
    RECEIVING_DAYS_BACK: int = 30
    RETURNS_MAX_PER_CLIENT: int = 200
    BACKFILL_DAYS_BACK: int = 7
    BACKFILL_MAX_PARENTS: int = 100
    TIMELINE_MAX_SHIPMENTS: int = 200
    TIMELINE_MAX_AGE_DAYS: int = 14

    # Shared secret for the cron endpoints (Authorization: Bearer <secret>).
    CRON_SECRET: Optional[str] = None

    class Config:
        # Do not auto-read .env here; load_dotenv() above already populates the
        # process environment.
        env_file = None
        extra = "ignore"


settings = Settings()

if not settings.DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is required")
