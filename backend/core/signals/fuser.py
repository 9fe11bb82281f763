"""Signal fuser: turns news sentiment and indicator readings into Signals.

News path:
- Only items with |sentiment| above the threshold, published inside the
  lookback window and not after ``now``
- Direction from sentiment label x latest price momentum
- confidence = |score| * 0.6 + volume spike bonus + momentum alignment bonus,
  capped at 1; signals at or below the minimum confidence are dropped
- Expire 2h after generation

Technical path:
- RSI below oversold -> BUY, above overbought -> SELL
- Fast/slow SMA crossover -> BUY (bullish) / SELL (bearish)
- Expire 4h after generation

This module is pure business logic with no I/O dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from core.errors import InsufficientDataError
from core.indicators import IndicatorCalculator, IndicatorSnapshot
from core.models import (
    NEWS_SIGNAL_TTL,
    TECHNICAL_SIGNAL_TTL,
    FuserConfig,
    NewsItem,
    PriceBar,
    SentimentLabel,
    Signal,
    SignalSource,
    SignalType,
    closes_of,
    extract_symbols,
)

logger = logging.getLogger(__name__)

SENTIMENT_WEIGHT = 0.6
VOLUME_SPIKE_BONUS = 0.2
ALIGNMENT_BONUS = 0.2


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class SignalFuser:
    """Combine indicator output and news sentiment into typed Signals."""

    extract_symbols = staticmethod(extract_symbols)

    def __init__(self, config: FuserConfig | None = None):
        self.config = config or FuserConfig()
        self._calculator = IndicatorCalculator(
            rsi_period=self.config.rsi_period,
            fast_period=self.config.fast_period,
            slow_period=self.config.slow_period,
        )

    # ------------------------------------------------------------------
    # Market context helpers
    # ------------------------------------------------------------------

    def price_change(self, bars: Sequence[PriceBar]) -> float:
        """Fractional change of the last close versus the one before."""
        if len(bars) < 2:
            raise InsufficientDataError("price_change", 2, len(bars))
        prev = bars[-2].close
        if prev == 0:
            return 0.0
        return float((bars[-1].close - prev) / prev)

    def volume_spike(self, bars: Sequence[PriceBar]) -> float:
        """Latest volume over the mean of the previous ``volume_lookback`` bars.

        Returns 1.0 (no spike) when there is not enough history.
        """
        lookback = self.config.volume_lookback
        if len(bars) < lookback + 1:
            return 1.0
        previous = [b.volume for b in bars[-(lookback + 1) : -1]]
        average = sum(previous) / lookback
        if average <= 0:
            return 1.0
        return bars[-1].volume / average

    @staticmethod
    def direction(label: SentimentLabel, price_change: float) -> SignalType:
        """Sentiment x momentum decision matrix."""
        if label == SentimentLabel.POSITIVE:
            if price_change >= 0:
                return SignalType.BUY
            return SignalType.BUY  # Dip-buy: good news after a drop
        if label == SentimentLabel.NEGATIVE:
            if price_change <= 0:
                return SignalType.SELL
            return SignalType.SELL  # Overbought: bad news after a rise
        return SignalType.NEUTRAL

    # ------------------------------------------------------------------
    # News-sourced signals
    # ------------------------------------------------------------------

    def is_impactful(self, item: NewsItem, now: datetime) -> bool:
        """Strong enough sentiment and inside the lookback window."""
        if abs(item.sentiment_score) <= self.config.sentiment_threshold:
            return False
        if item.published_at > now:
            return False
        return now - item.published_at <= self.config.news_lookback

    def news_signal(
        self,
        item: NewsItem,
        symbol: str,
        bars: Sequence[PriceBar],
        now: datetime,
    ) -> Signal | None:
        """
        Build a news-sourced signal for one symbol.

        Args:
            item: News item with precomputed sentiment
            symbol: Symbol the item mentions
            bars: Recent bars for the symbol, oldest first
            now: Generation time

        Returns:
            Signal, or None when the item is not impactful or confidence is
            too low

        Raises:
            InsufficientDataError: fewer than ``min_news_bars`` bars
        """
        if not self.is_impactful(item, now):
            return None
        if len(bars) < self.config.min_news_bars:
            raise InsufficientDataError("news_signal", self.config.min_news_bars, len(bars))

        change = self.price_change(bars)
        spike = self.volume_spike(bars)
        signal_type = self.direction(item.sentiment_label, change)

        confidence = abs(item.sentiment_score) * SENTIMENT_WEIGHT
        if spike > self.config.volume_spike_threshold:
            confidence += VOLUME_SPIKE_BONUS
        if (signal_type == SignalType.BUY and change > 0) or (
            signal_type == SignalType.SELL and change < 0
        ):
            confidence += ALIGNMENT_BONUS
        confidence = min(1.0, confidence)

        if confidence <= self.config.min_confidence:
            logger.debug(
                f"News signal for {symbol} dropped: confidence {confidence:.2f}"
            )
            return None

        movement = "increased" if change > 0 else "decreased"
        volume_desc = "high" if spike > 1.5 else "normal"
        explanation = (
            f"Strong {item.sentiment_label.value} sentiment detected in news: "
            f"\"{item.title}\". Price {movement} by {abs(change) * 100:.2f}% "
            f"with {volume_desc} trading volume. "
            f"This suggests a {signal_type.value} opportunity."
        )

        return Signal(
            symbol=symbol,
            signal_type=signal_type,
            strength=_clamp(abs(item.sentiment_score)),
            confidence=_clamp(confidence),
            source=SignalSource.NEWS_SENTIMENT,
            generated_at=now,
            expiration=now + NEWS_SIGNAL_TTL,
            explanation=explanation,
            news_id=item.id or None,
            bar_timestamp=bars[-1].timestamp,
        )

    def news_signals(
        self,
        items: Sequence[NewsItem],
        symbol: str,
        bars: Sequence[PriceBar],
        now: datetime,
    ) -> list[Signal]:
        """News signals for every impactful item mentioning ``symbol``."""
        signals = []
        for item in items:
            if not item.mentions(symbol):
                continue
            try:
                signal = self.news_signal(item, symbol, bars, now)
            except InsufficientDataError as e:
                logger.debug(f"Skipping news signal for {symbol}: {e}")
                continue
            if signal:
                signals.append(signal)
        return signals

    # ------------------------------------------------------------------
    # Technical signals
    # ------------------------------------------------------------------

    def snapshot(self, bars: Sequence[PriceBar]) -> IndicatorSnapshot | None:
        return self._calculator.calculate_latest(closes_of(list(bars)))

    def snapshots(self, bars: Sequence[PriceBar]) -> list[IndicatorSnapshot]:
        """One snapshot per bar, each using only the bars up to it."""
        return self._calculator.calculate_series(closes_of(list(bars)))

    def rsi_signal(
        self,
        symbol: str,
        snapshot: IndicatorSnapshot,
        now: datetime,
        bar_timestamp: datetime | None = None,
    ) -> Signal | None:
        """OVERSOLD -> BUY, OVERBOUGHT -> SELL."""
        cfg = self.config
        value = snapshot.rsi

        if value < cfg.oversold:
            condition = "OVERSOLD"
            signal_type = SignalType.BUY
            strength = (cfg.oversold - value) / cfg.oversold
        elif value > cfg.overbought:
            condition = "OVERBOUGHT"
            signal_type = SignalType.SELL
            strength = (value - cfg.overbought) / (100.0 - cfg.overbought)
        else:
            return None

        return self._technical(
            symbol,
            signal_type,
            strength,
            cfg.rsi_confidence,
            f"Technical indicator: {condition} (RSI {value:.1f})"
            f"{self._context(snapshot)}",
            now,
            bar_timestamp,
        )

    def crossover_signal(
        self,
        symbol: str,
        snapshot: IndicatorSnapshot,
        now: datetime,
        bar_timestamp: datetime | None = None,
    ) -> Signal | None:
        """Fast SMA crossing the slow SMA from below (BUY) or above (SELL)."""
        fast, slow = snapshot.sma_fast, snapshot.sma_slow
        prev_fast, prev_slow = snapshot.prev_sma_fast, snapshot.prev_sma_slow
        if None in (fast, slow, prev_fast, prev_slow):
            return None

        cfg = self.config
        if prev_fast < prev_slow and fast > slow:
            condition = "BULLISH_CROSSOVER"
            signal_type = SignalType.BUY
        elif prev_fast > prev_slow and fast < slow:
            condition = "BEARISH_CROSSOVER"
            signal_type = SignalType.SELL
        else:
            return None

        return self._technical(
            symbol,
            signal_type,
            cfg.crossover_strength,
            cfg.crossover_confidence,
            f"Technical indicator: {condition} "
            f"(SMA{cfg.fast_period} {fast:.2f} vs SMA{cfg.slow_period} {slow:.2f})"
            f"{self._context(snapshot)}",
            now,
            bar_timestamp,
        )

    def technical_signals(
        self,
        symbol: str,
        bars: Sequence[PriceBar],
        now: datetime,
    ) -> list[Signal]:
        """All technical signals (RSI extremes and SMA crossover) at the last bar."""
        snapshot = self.snapshot(bars)
        if snapshot is None:
            return []
        bar_ts = bars[-1].timestamp
        signals = [
            self.rsi_signal(symbol, snapshot, now, bar_ts),
            self.crossover_signal(symbol, snapshot, now, bar_ts),
        ]
        return [s for s in signals if s is not None]

    def _technical(
        self,
        symbol: str,
        signal_type: SignalType,
        strength: float,
        confidence: float,
        explanation: str,
        now: datetime,
        bar_timestamp: datetime | None,
    ) -> Signal:
        logger.debug(f"{symbol}: {explanation}")
        return Signal(
            symbol=symbol,
            signal_type=signal_type,
            strength=_clamp(strength),
            confidence=_clamp(confidence),
            source=SignalSource.TECHNICAL_ANALYSIS,
            generated_at=now,
            expiration=now + TECHNICAL_SIGNAL_TTL,
            explanation=explanation,
            bar_timestamp=bar_timestamp,
        )

    @staticmethod
    def _context(snapshot: IndicatorSnapshot) -> str:
        bands = snapshot.bands
        if snapshot.close > bands.upper:
            band_pos = "above upper band"
        elif snapshot.close < bands.lower:
            band_pos = "below lower band"
        else:
            band_pos = "inside bands"
        return f"; MACD hist {snapshot.macd.histogram:+.3f}, close {band_pos}"
