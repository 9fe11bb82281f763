"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Market data (Alpha Vantage compatible)
    alpha_vantage_api_key: str = ""
    market_data_base_url: str = "https://www.alphavantage.co"
    market_data_interval: str = "5min"
    request_timeout_seconds: float = 10.0

    # Ingestion retry
    max_retries: int = 3
    retry_base_delay: float = 2.0  # seconds, multiplied by attempt number

    # Circuit breaker
    breaker_failure_threshold: int = 5
    breaker_reset_timeout: float = 60.0  # seconds

    # Signal generation
    default_symbols: list[str] = ["AAPL", "MSFT", "GOOGL", "AMZN", "TSLA"]
    signal_job_interval_seconds: float = 900.0

    # Risk
    max_position_fraction: float = 0.10
    max_daily_loss_fraction: float = 0.05


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
