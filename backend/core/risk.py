"""Risk gate: accept or reject candidate signals against portfolio state.

Rejection rules, checked in order:
1. Signal already expired
2. Same symbol and type generated within the duplicate window (2h)
3. Held position was opened by a different signal type (conflict)
4. Adding would push the position past headroom x max position fraction
   of the balance

Sizing for accepted signals:
    risk_budget = balance * max_daily_loss_fraction
    size = min(risk_budget / (price * stop_loss_fraction),
               balance * max_position_fraction / price)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Mapping, Protocol

from core.errors import RiskRejected
from core.models import Position, RiskConfig, Signal, SignalType

logger = logging.getLogger(__name__)

REASON_EXPIRED = "Signal expired"
REASON_DUPLICATE = "Similar signal recently generated"
REASON_CONFLICT = "Conflicting position already exists"
REASON_POSITION_SIZE = "Would exceed maximum position size"


class PortfolioState(Protocol):
    """What the gate needs to know about a portfolio."""

    @property
    def balance(self) -> Decimal: ...

    @property
    def positions(self) -> Mapping[str, Position]: ...


@dataclass(frozen=True)
class RiskDecision:
    accepted: bool
    reason: str | None = None
    is_exit: bool = False


@dataclass(frozen=True)
class PortfolioRisk:
    total_exposure: float  # Sum of position value / balance
    diversification_score: float  # 1 - sqrt(Herfindahl index)


class RiskGate:
    """Validate signals and size positions according to a RiskConfig."""

    def __init__(self, config: RiskConfig | None = None):
        self.config = config or RiskConfig()

    def validate_signal(
        self,
        signal: Signal,
        portfolio: PortfolioState | None,
        recent_signals: Iterable[Signal] = (),
        now: datetime | None = None,
    ) -> RiskDecision:
        """
        Decide whether a candidate signal may be acted on.

        Args:
            signal: Candidate signal
            portfolio: Current portfolio state, or None to skip position rules
            recent_signals: Previously accepted signals (duplicate lookback)
            now: Evaluation time (defaults to wall clock UTC)

        Returns:
            RiskDecision with ``reason`` set when rejected
        """
        if now is None:
            now = datetime.now(timezone.utc)

        if signal.is_expired(now):
            return RiskDecision(False, REASON_EXPIRED)

        if self._is_duplicate(signal, recent_signals):
            return RiskDecision(False, REASON_DUPLICATE)

        if portfolio is None:
            return RiskDecision(True)

        position = portfolio.positions.get(signal.symbol)
        if position is None:
            return RiskDecision(True)

        if position.signal_type != signal.signal_type:
            if (
                self.config.allow_exit_signals
                and position.signal_type == SignalType.BUY
                and signal.signal_type == SignalType.SELL
            ):
                return RiskDecision(True, is_exit=True)
            return RiskDecision(False, REASON_CONFLICT)

        if self.would_exceed_position_size(position, portfolio.balance):
            return RiskDecision(False, REASON_POSITION_SIZE)

        return RiskDecision(True)

    def enforce(
        self,
        signal: Signal,
        portfolio: PortfolioState | None,
        recent_signals: Iterable[Signal] = (),
        now: datetime | None = None,
    ) -> RiskDecision:
        """Like validate_signal, but raises RiskRejected on rejection."""
        decision = self.validate_signal(signal, portfolio, recent_signals, now)
        if not decision.accepted:
            raise RiskRejected(signal.id, decision.reason or "rejected")
        return decision

    def _is_duplicate(self, signal: Signal, recent_signals: Iterable[Signal]) -> bool:
        window = self.config.duplicate_window
        for other in recent_signals:
            if other.id == signal.id:
                continue
            if other.symbol != signal.symbol or other.signal_type != signal.signal_type:
                continue
            age = signal.generated_at - other.generated_at
            if timedelta(0) <= age < window:
                return True
        return False

    def would_exceed_position_size(self, position: Position, balance: Decimal) -> bool:
        """Existing investment plus one more max-size slice above the headroom cap."""
        fraction = Decimal(str(self.config.max_position_fraction))
        headroom = Decimal(str(self.config.position_headroom_multiplier))
        proposed = balance * fraction
        return position.invested + proposed > balance * fraction * headroom

    def position_size(self, balance: Decimal, current_price: Decimal) -> Decimal:
        """Quantity to trade for an accepted signal."""
        if current_price <= 0 or balance <= 0:
            return Decimal("0")
        cfg = self.config
        risk_budget = balance * Decimal(str(cfg.max_daily_loss_fraction))
        price_distance = current_price * Decimal(str(cfg.stop_loss_fraction))
        raw_size = risk_budget / price_distance
        max_size = balance * Decimal(str(cfg.max_position_fraction)) / current_price
        return min(raw_size, max_size)

    def exit_levels(
        self, entry_price: Decimal, signal_type: SignalType
    ) -> tuple[Decimal, Decimal]:
        """(stop_loss, take_profit) prices for a new position."""
        sl = Decimal(str(self.config.stop_loss_fraction))
        tp = Decimal(str(self.config.take_profit_fraction))
        if signal_type == SignalType.SELL:
            return entry_price * (1 + sl), entry_price * (1 - tp)
        return entry_price * (1 - sl), entry_price * (1 + tp)

    def portfolio_risk(
        self, portfolio: PortfolioState, prices: Mapping[str, Decimal]
    ) -> PortfolioRisk:
        """Exposure and Herfindahl-based diversification of current holdings."""
        balance = portfolio.balance
        if balance <= 0 or not portfolio.positions:
            return PortfolioRisk(total_exposure=0.0, diversification_score=1.0)

        total = 0.0
        concentration = 0.0
        for symbol, position in portfolio.positions.items():
            price = prices.get(symbol, position.entry_price)
            weight = float(position.quantity * price / balance)
            total += weight
            concentration += weight ** 2

        return PortfolioRisk(
            total_exposure=total,
            diversification_score=1.0 - concentration ** 0.5,
        )
