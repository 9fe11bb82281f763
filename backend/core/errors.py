"""Error taxonomy shared by signal generation, risk gating and simulation.

Each error maps to one handling policy:
- ValidationError: malformed run config, fails fast to the caller
- InsufficientDataError: too few bars for an indicator, the signal is skipped
- RiskRejected: signal failed the risk gate, dropped and logged
- BreakerOpenError: upstream circuit is open, the caller may fall back
- SimulationInvariantError: ledger inconsistency, fatal to one run only
"""

from __future__ import annotations

from datetime import datetime


class SignalEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(SignalEngineError, ValueError):
    """Backtest or signal request configuration is invalid."""


class InsufficientDataError(SignalEngineError):
    """Series is shorter than an indicator's minimum lookback."""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"{indicator} needs {required} points, got {available}"
        )


class RiskRejected(SignalEngineError):
    """Signal was rejected by the risk gate."""

    def __init__(self, signal_id: str, reason: str):
        self.signal_id = signal_id
        self.reason = reason
        super().__init__(f"Signal {signal_id} rejected: {reason}")


class BreakerOpenError(SignalEngineError):
    """Circuit is open for a service; the operation was not attempted."""

    def __init__(self, service_key: str, retry_at: datetime | None = None):
        self.service_key = service_key
        self.retry_at = retry_at
        msg = f"Circuit breaker open for {service_key}"
        if retry_at is not None:
            msg += f" (retry after {retry_at.isoformat()})"
        super().__init__(msg)


class SimulationInvariantError(SignalEngineError):
    """Ledger reached a state that should be impossible (negative cash etc.)."""


class BacktestTimeoutError(SignalEngineError):
    """Backtest run exceeded its deadline and was cancelled."""
