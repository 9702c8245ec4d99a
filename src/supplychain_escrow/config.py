"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup — if a setting has the wrong type, the app fails fast with a
clear error message.

Usage:
    from supplychain_escrow.config import get_settings
    settings = get_settings()
    print(settings.registry_address)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the supply-chain escrow coordinator."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Ledger targets ---
    # Both contracts are deployed independently; the escrow is bound to one
    # registry at its own creation and the guard checks that binding.
    registry_address: str = "0x286A15f6fd612b8105F867aCB69Fb74Bf34e73A1"
    escrow_address: str = "0x6Cf8fE211D0A02821e36e43eDD5f016A1Ab3f57e"
    simulate_ledger: bool = True

    # --- Lookback windows ---
    lot_window: int = Field(default=10, ge=1)
    payment_window: int = Field(default=50, ge=1)

    # --- Confirmation polling ---
    confirm_timeout_seconds: float = Field(default=120.0, gt=0)
    confirm_poll_interval_seconds: float = Field(default=2.0, gt=0)
    confirm_grace_seconds: float = Field(default=5.0, ge=0)

    # --- Consistency guard ---
    binding_cache_ttl_seconds: float = Field(default=30.0, ge=0)

    # --- Fee override for the one-shot resubmission ---
    fee_override_gas_limit: int = 8_000_000  # well under the 16.7M block limit
    fee_override_gas_price: int | None = None

    # --- Read retries ---
    read_max_attempts: int = Field(default=3, ge=1)
    read_retry_min_seconds: float = 0.5
    read_retry_max_seconds: float = 4.0

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
