"""Application configuration loaded from environment variables."""

from decimal import Decimal
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings sourced from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database
    database_url: str

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Pricing
    # One ISO currency per deployment; every stored price is in this currency
    currency: str = "EGP"
    ounce_threshold: Decimal = Decimal("10000")
    change_ounce_threshold: Decimal = Decimal("500")
    borderline_ratio: Decimal = Decimal("0.10")

    # Source fetching
    fetch_timeout_seconds: float = 15.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Scheduling
    ingestion_interval_seconds: int = 60

    # Read path freshness windows
    price_fresh_seconds: int = 120
    price_stale_seconds: int = 300

    # Trading
    snapshot_ttl_seconds: int = 300

    # Metals-API market feed (optional -- reads fall back to stored prices)
    metals_api_key: str = ""
    metals_api_url: str = "https://metals-api.com/api/latest"
    market_refresh_seconds: int = 3600
    market_spread_factor: Decimal = Decimal("0.98")

    @model_validator(mode="after")
    def normalize_database_url(self) -> "Settings":
        """Ensure DATABASE_URL uses the asyncpg driver.

        Hosting providers supply postgresql:// but SQLAlchemy async
        requires postgresql+asyncpg://.
        """
        url = self.database_url
        if url.startswith("postgresql://"):
            self.database_url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            self.database_url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached singleton Settings instance."""
    return Settings()
