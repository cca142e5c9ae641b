from pydantic_settings import BaseSettings
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    # DATABASE_URL points at the event store. Production uses Postgres; any
    # SQLAlchemy URL works, which is how the test-suite runs against SQLite.
    DATABASE_URL: str = "sqlite:///./finsync.db"

    # Starling Bank webhook verification.
    #
    # STARLING_PUBLIC_KEY may be either a full PEM document or just the base64
    # body Starling shows in the developer portal (without BEGIN/END lines).
    STARLING_PUBLIC_KEY: Optional[str] = None
    STARLING_SIGNATURE_HEADER: str = "X-Hook-Signature"
    # ASGI servers lower-case header names, so an exact-case lookup of
    # "X-Hook-Signature" never matches behind uvicorn. Keep False unless the
    # transport preserves the sender's casing.
    STARLING_SIGNATURE_HEADER_CASE_SENSITIVE: bool = False
    # "validate_then_persist" rejects events without webhookEventUid before
    # writing anything; "persist_then_validate" stores every verified body
    # first and only then checks for the identifier.
    STARLING_WEBHOOK_PERSIST_MODE: str = "validate_then_persist"

    # Etsy marketplace credentials. The shared secret is mandatory for the
    # x-api-key header as of Jan 18, 2026.
    ETSY_API_KEY: Optional[str] = None
    ETSY_SHARED_SECRET: Optional[str] = None
    ETSY_SHOP_ID: Optional[str] = None
    ETSY_API_BASE_URL: str = "https://openapi.etsy.com"
    ETSY_OAUTH_TOKEN_URL: str = "https://api.etsy.com/v3/public/oauth/token"

    # Ledger sync gate. Disabled by default so a fresh deployment never starts
    # pulling from Etsy before tokens have been provisioned.
    ETSY_LEDGER_SYNC_ENABLED: bool = False
    # Start the in-process daily loop on application startup. Deployments that
    # trigger POST /sync/etsy/ledger from an external cron leave this off.
    ETSY_LEDGER_SYNC_WORKER_ENABLED: bool = False
    ETSY_LEDGER_CURSOR_FALLBACK: str = "lookback"  # "lookback" or "epoch"
    ETSY_LEDGER_WINDOW_POLICY: str = "capped"  # "capped" or "until_now"
    ETSY_LEDGER_WINDOW_DAYS: int = 30

    class Config:
        env_file = None
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def etsy_ledger_window_seconds(self) -> int:
        return int(self.ETSY_LEDGER_WINDOW_DAYS) * 24 * 60 * 60


settings = Settings()
