from pydantic_settings import BaseSettings
from pydantic import field_validator
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./billing.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "POS Billing Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Ledger (system of record for finalized invoices)
    LEDGER_BACKEND: str = "database"  # Options: database, memory

    # Invoice numbering
    INVOICE_SERIAL_PADDING: int = 6  # 6 = 000001
    BUSINESS_TIMEZONE: str = "Asia/Kolkata"  # Wall clock used to derive the financial year

    # GST
    DEFAULT_GST_RATE: Decimal = Decimal("18")  # Percent, applied when a bill doesn't carry its own rate

    # Bill read cache
    BILL_CACHE_TTL: int = 20  # Seconds, short so other terminals see new bills quickly

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    LEDGER_RETRY_INTERVAL_MINUTES: int = 5  # Retry ledger writes that failed after finalize
    CACHE_CLEANUP_INTERVAL_MINUTES: int = 10

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('LEDGER_BACKEND', mode='before')
    @classmethod
    def normalize_ledger_backend(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in ("database", "memory"):
                raise ValueError("LEDGER_BACKEND must be 'database' or 'memory'")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return list(self.CORS_ORIGINS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
