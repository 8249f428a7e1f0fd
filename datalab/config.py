"""Runtime configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``DATALAB_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="DATALAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Parameter edits coalesce into one recompute per window
    debounce_ms: int = Field(default=150, ge=0)

    # Backtests on fewer bars run, but log a warning
    min_backtest_bars: int = Field(default=30, ge=1)

    # Signal reliability look-ahead horizons (bars)
    signal_horizons: tuple[int, ...] = (1, 3, 7, 14, 30)

    # Annualization for rolling volatility (365 for 24/7 markets, 252 for equities)
    volatility_periods_per_year: int = Field(default=365, gt=0)

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
