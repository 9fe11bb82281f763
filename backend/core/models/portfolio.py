"""Simulation ledger: positions, trades and the portfolio that owns them.

Fee convention: the transaction cost is charged to cash only. A BUY of
``amount`` buys ``amount / price`` shares and debits ``amount * (1 + fee)``;
a SELL credits ``qty * price * (1 - fee)``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.errors import SimulationInvariantError
from core.models.signal import SignalType

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class Position(BaseModel):
    """Open position in one symbol."""

    symbol: str
    quantity: Decimal = Field(ge=0)
    entry_price: Decimal  # Weighted average
    entry_date: datetime
    signal_type: SignalType = SignalType.BUY

    @property
    def invested(self) -> Decimal:
        """Cost basis excluding fees."""
        return self.quantity * self.entry_price


class Trade(BaseModel):
    """Append-only trade log entry."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    timestamp: datetime
    symbol: str
    action: TradeAction
    quantity: Decimal
    price: Decimal
    value: Decimal  # quantity * price, before fees
    cost: Decimal  # transaction cost charged
    realized_pnl: Decimal | None = None  # SELL only


class EquityPoint(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    timestamp: datetime
    value: Decimal


class Portfolio(BaseModel):
    """Cash/positions ledger for exactly one backtest run."""

    cash: Decimal = Field(ge=0)
    positions: dict[str, Position] = Field(default_factory=dict)
    history: list[EquityPoint] = Field(default_factory=list)
    trades: list[Trade] = Field(default_factory=list)

    @property
    def balance(self) -> Decimal:
        return self.cash

    def invested(self, symbol: str) -> Decimal:
        position = self.positions.get(symbol)
        return position.invested if position else ZERO

    def buy(
        self,
        symbol: str,
        price: Decimal,
        strength: float,
        timestamp: datetime,
        fee: Decimal,
        buy_fraction: Decimal = Decimal("0.1"),
        signal_type: SignalType = SignalType.BUY,
    ) -> Trade | None:
        """
        Invest ``cash * strength * buy_fraction`` at ``price``.

        Returns:
            The Trade, or None when the order is not executable (zero amount,
            zero price, or cost above available cash). A skipped order leaves
            the ledger unchanged.
        """
        cash_before = self.cash
        amount = cash_before * Decimal(str(strength)) * buy_fraction
        if amount <= ZERO or price <= ZERO:
            return None
        if amount > cash_before:
            logger.debug(f"BUY {symbol} skipped: amount {amount} > cash {cash_before}")
            return None

        cost = amount * fee
        total = amount + cost
        if total > cash_before:
            logger.debug(f"BUY {symbol} skipped: cost {total} > cash {cash_before}")
            return None

        quantity = amount / price
        self.cash = cash_before - total
        if self.cash < ZERO:
            raise SimulationInvariantError(
                f"cash went negative buying {symbol}: {self.cash}"
            )

        position = self.positions.get(symbol)
        if position is None:
            self.positions[symbol] = Position(
                symbol=symbol,
                quantity=quantity,
                entry_price=price,
                entry_date=timestamp,
                signal_type=signal_type,
            )
        else:
            new_qty = position.quantity + quantity
            position.entry_price = (
                position.quantity * position.entry_price + quantity * price
            ) / new_qty
            position.quantity = new_qty

        trade = Trade(
            timestamp=timestamp,
            symbol=symbol,
            action=TradeAction.BUY,
            quantity=quantity,
            price=price,
            value=amount,
            cost=cost,
        )
        self.trades.append(trade)
        return trade

    def sell(
        self,
        symbol: str,
        price: Decimal,
        timestamp: datetime,
        fee: Decimal,
    ) -> Trade | None:
        """Liquidate the whole position at ``price``. None if nothing is held."""
        position = self.positions.get(symbol)
        if position is None:
            return None
        if position.quantity < ZERO:
            raise SimulationInvariantError(
                f"negative quantity held in {symbol}: {position.quantity}"
            )

        gross = position.quantity * price
        cost = gross * fee
        proceeds = gross - cost
        # Entry fees were charged on the cost basis at buy time
        realized = proceeds - position.invested * (1 + fee)

        self.cash += proceeds
        del self.positions[symbol]

        trade = Trade(
            timestamp=timestamp,
            symbol=symbol,
            action=TradeAction.SELL,
            quantity=position.quantity,
            price=price,
            value=gross,
            cost=cost,
            realized_pnl=realized,
        )
        self.trades.append(trade)
        return trade

    def market_value(self, prices: dict[str, Decimal]) -> Decimal:
        """cash + sum(qty * price), using entry price when no price is known."""
        total = self.cash
        for symbol, position in self.positions.items():
            price = prices.get(symbol, position.entry_price)
            total += position.quantity * price
        return total

    def record_value(
        self, timestamp: datetime, prices: dict[str, Decimal]
    ) -> EquityPoint:
        """Revalue and append to the equity history."""
        point = EquityPoint(timestamp=timestamp, value=self.market_value(prices))
        self.history.append(point)
        return point
