"""Backtest-specific configuration.

Independent of app/config.py: a backtest reads price/news data and writes
results either through local files or a PostgreSQL database.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.models import RiskConfig


class BacktestSettings(BaseSettings):
    """Backtest configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BACKTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Ledger
    transaction_cost: Decimal = Decimal("0.001")  # 0.1% per side
    buy_fraction: Decimal = Decimal("0.1")  # Of cash, scaled by signal strength

    # Execution limits
    run_timeout_seconds: float = Field(default=300.0, gt=0)
    max_concurrent_runs: int = Field(default=4, ge=1)
    yield_every_bars: int = Field(default=50, ge=1)

    # Let a SELL close a BUY-tagged position instead of counting as a conflict
    allow_exit_signals: bool = True

    # PostgreSQL for prices, news and results; file storage when unset
    database_url: str | None = None

    # Local storage
    data_dir: Path = Path("data")
    results_dir: Path = Path("results")

    def risk_config(self) -> RiskConfig:
        return RiskConfig(allow_exit_signals=self.allow_exit_signals)


_settings: BacktestSettings | None = None


def get_backtest_settings() -> BacktestSettings:
    """Get cached backtest settings instance."""
    global _settings
    if _settings is None:
        _settings = BacktestSettings()
    return _settings
