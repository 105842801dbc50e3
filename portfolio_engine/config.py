# portfolio_engine/config.py
"""
Engine configuration using Pydantic Settings.

Loads configuration from environment variables (prefix PORTFOLIO_ENGINE_)
with validation:
- ENVIRONMENT: Runtime mode (development, test, production)
- LOG_LEVEL / LOG_FORMAT: Logging setup
- CACHE_*: Valuation cache policy and tuning
- FX_REFERENCE_HOUR: Hour of day used to value a cash flow date
- STORE_RETRY_*: Retry policy for quote/currency store calls

Configuration is validated on import. Invalid configuration raises a
ValueError with a descriptive message.

Usage:
    from portfolio_engine.config import settings

    market = Market(store, lock_timeout=settings.cache_lock_timeout)
"""
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    Environment variables (all prefixed with PORTFOLIO_ENGINE_):
        - ENVIRONMENT: Runtime environment (development, test, production)
        - LOG_LEVEL: Logging level (default: "INFO")
        - LOG_FORMAT: "text" or "json" (default: "text")

    Valuation cache:
        - CACHE_POLICY: "range_primed" or "uncached" (default: "range_primed")
        - CACHE_PRIME_SPAN_DAYS: Days fetched around a missed time (default: 365)
        - CACHE_LOCK_TIMEOUT: Seconds to wait for the population lock (default: 10)

    Store access:
        - STORE_RETRY_ATTEMPTS: Total attempts for a store call (default: 3)
        - STORE_RETRY_MIN_WAIT / STORE_RETRY_MAX_WAIT: Backoff bounds in seconds
    """

    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Runtime environment (development, test, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Log output format"
    )

    # =========================================================================
    # VALUATION CACHE
    # =========================================================================
    cache_policy: Literal["range_primed", "uncached"] = Field(
        default="range_primed",
        description="Default caching policy of a Market"
    )
    cache_prime_span_days: int = Field(
        default=365,
        ge=1,
        le=3650,
        description="Days fetched on each side of a cache miss"
    )
    cache_lock_timeout: float = Field(
        default=10.0,
        gt=0,
        le=300,
        description="Seconds to wait for the cache population lock"
    )

    # =========================================================================
    # FX CONVERSION
    # =========================================================================
    fx_reference_hour: int = Field(
        default=20,
        ge=0,
        le=23,
        description="Hour of day (UTC) at which a cash flow date is valued"
    )

    # =========================================================================
    # STORE ACCESS
    # =========================================================================
    store_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts for a quote/currency store call"
    )
    store_retry_min_wait: float = Field(
        default=0.5,
        ge=0,
        description="Minimum backoff between store retries in seconds"
    )
    store_retry_max_wait: float = Field(
        default=5.0,
        ge=0,
        description="Maximum backoff between store retries in seconds"
    )

    model_config = SettingsConfigDict(
        env_prefix="PORTFOLIO_ENGINE_",
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_retry_config(self) -> "Settings":
        """
        Validate the store retry backoff bounds.

        Rules:
        - max wait must not be below min wait
        - test: retries never sleep, so the suite stays fast
        """
        if self.store_retry_max_wait < self.store_retry_min_wait:
            raise ValueError(
                "STORE_RETRY_MAX_WAIT must be >= STORE_RETRY_MIN_WAIT, got "
                f"{self.store_retry_max_wait} < {self.store_retry_min_wait}"
            )

        if self.environment == "test":
            object.__setattr__(self, "store_retry_min_wait", 0.0)
            object.__setattr__(self, "store_retry_max_wait", 0.0)

        return self

    @property
    def is_test(self) -> bool:
        """Check if running in test environment."""
        return self.environment == "test"


# Create single instance
settings = Settings()
