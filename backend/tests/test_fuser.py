"""Tests for SignalFuser (news and technical signal paths)."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.errors import InsufficientDataError
from core.models import (
    NEWS_SIGNAL_TTL,
    TECHNICAL_SIGNAL_TTL,
    FuserConfig,
    NewsItem,
    PriceBar,
    SentimentLabel,
    SignalSource,
    SignalType,
)
from core.signals import SignalFuser

T0 = datetime(2024, 1, 2, 14, 0, tzinfo=timezone.utc)


def _make_bars(closes, volumes=None, symbol="AAPL", start=T0) -> list[PriceBar]:
    if volumes is None:
        volumes = [1000] * len(closes)
    return [
        PriceBar(
            symbol=symbol,
            timestamp=start + timedelta(hours=i),
            open=Decimal(str(c)),
            high=Decimal(str(c)),
            low=Decimal(str(c)),
            close=Decimal(str(c)),
            volume=v,
        )
        for i, (c, v) in enumerate(zip(closes, volumes))
    ]


def _make_news(score: float, published_at: datetime, title="AAPL earnings update") -> NewsItem:
    return NewsItem.from_article(
        title=title,
        content="",
        published_at=published_at,
        sentiment_score=score,
        id="news-1",
    )


RISING = [100, 101, 102, 103, 104, 105, 106, 107, 108, 109]
FALLING = list(reversed(RISING))


class TestMarketContext:
    """Price change, volume spike and direction helpers."""

    def test_price_change(self):
        fuser = SignalFuser()
        assert fuser.price_change(_make_bars([100, 101])) == pytest.approx(0.01)
        assert fuser.price_change(_make_bars([100, 95])) == pytest.approx(-0.05)

    def test_price_change_needs_two_bars(self):
        with pytest.raises(InsufficientDataError):
            SignalFuser().price_change(_make_bars([100]))

    def test_volume_spike(self):
        bars = _make_bars(RISING, volumes=[1000] * 9 + [5000])
        assert SignalFuser().volume_spike(bars) == pytest.approx(5.0)

    def test_volume_spike_short_history_is_neutral(self):
        bars = _make_bars(RISING[:9], volumes=[1000] * 8 + [5000])
        assert SignalFuser().volume_spike(bars) == 1.0

    @pytest.mark.parametrize(
        "label,change,expected",
        [
            (SentimentLabel.POSITIVE, 0.01, SignalType.BUY),
            (SentimentLabel.POSITIVE, -0.01, SignalType.BUY),
            (SentimentLabel.NEGATIVE, -0.01, SignalType.SELL),
            (SentimentLabel.NEGATIVE, 0.01, SignalType.SELL),
            (SentimentLabel.NEUTRAL, 0.01, SignalType.NEUTRAL),
        ],
    )
    def test_direction_matrix(self, label, change, expected):
        assert SignalFuser.direction(label, change) == expected


class TestNewsSignal:
    """News-sourced signal generation."""

    def test_positive_news_with_rising_price(self):
        bars = _make_bars(RISING)
        now = bars[-1].timestamp
        item = _make_news(0.9, now - timedelta(hours=1))

        signal = SignalFuser().news_signal(item, "AAPL", bars, now)

        assert signal is not None
        assert signal.signal_type == SignalType.BUY
        assert signal.strength == pytest.approx(0.9)
        assert signal.confidence == pytest.approx(0.9 * 0.6 + 0.2)
        assert signal.source == SignalSource.NEWS_SENTIMENT
        assert signal.expiration == now + NEWS_SIGNAL_TTL
        assert signal.news_id == "news-1"
        assert signal.bar_timestamp == bars[-1].timestamp
        assert "positive" in signal.explanation

    def test_negative_news_with_falling_price(self):
        bars = _make_bars(FALLING)
        now = bars[-1].timestamp
        signal = SignalFuser().news_signal(_make_news(-0.9, now), "AAPL", bars, now)

        assert signal.signal_type == SignalType.SELL
        assert signal.confidence == pytest.approx(0.74)

    def test_low_confidence_dropped(self):
        bars = _make_bars(FALLING)
        now = bars[-1].timestamp
        # 0.75 * 0.6 = 0.45, no bonuses
        assert SignalFuser().news_signal(_make_news(0.75, now), "AAPL", bars, now) is None

    def test_volume_spike_bonus(self):
        bars = _make_bars(FALLING, volumes=[1000] * 9 + [5000])
        now = bars[-1].timestamp
        signal = SignalFuser().news_signal(_make_news(0.75, now), "AAPL", bars, now)

        assert signal.signal_type == SignalType.BUY
        assert signal.confidence == pytest.approx(0.65)

    def test_confidence_capped(self):
        bars = _make_bars(RISING, volumes=[1000] * 9 + [5000])
        now = bars[-1].timestamp
        signal = SignalFuser().news_signal(_make_news(1.0, now), "AAPL", bars, now)
        assert signal.confidence == pytest.approx(1.0)

    def test_threshold_is_exclusive(self):
        bars = _make_bars(RISING)
        now = bars[-1].timestamp
        assert SignalFuser().news_signal(_make_news(0.7, now), "AAPL", bars, now) is None

    def test_stale_news_ignored(self):
        bars = _make_bars(RISING)
        now = bars[-1].timestamp
        item = _make_news(0.9, now - timedelta(hours=25))
        assert SignalFuser().news_signal(item, "AAPL", bars, now) is None

    def test_future_news_ignored(self):
        bars = _make_bars(RISING)
        now = bars[-1].timestamp
        item = _make_news(0.9, now + timedelta(minutes=5))
        assert SignalFuser().news_signal(item, "AAPL", bars, now) is None

    def test_too_few_bars_raises(self):
        bars = _make_bars(RISING[:5])
        now = bars[-1].timestamp
        with pytest.raises(InsufficientDataError) as exc:
            SignalFuser().news_signal(_make_news(0.9, now), "AAPL", bars, now)
        assert exc.value.required == 6

    def test_custom_threshold(self):
        fuser = SignalFuser(FuserConfig(sentiment_threshold=0.5, min_confidence=0.3))
        bars = _make_bars(FALLING)
        now = bars[-1].timestamp
        signal = fuser.news_signal(_make_news(0.6, now), "AAPL", bars, now)
        assert signal is not None
        assert signal.confidence == pytest.approx(0.36)


class TestNewsSignals:
    """Batch news path."""

    def test_only_matching_symbols(self):
        bars = _make_bars(RISING)
        now = bars[-1].timestamp
        items = [
            _make_news(0.9, now, title="AAPL beats"),
            _make_news(0.9, now, title="MSFT beats"),
        ]
        signals = SignalFuser().news_signals(items, "AAPL", bars, now)
        assert len(signals) == 1
        assert signals[0].symbol == "AAPL"

    def test_insufficient_bars_skipped(self):
        bars = _make_bars(RISING[:3])
        now = bars[-1].timestamp
        assert SignalFuser().news_signals([_make_news(0.9, now)], "AAPL", bars, now) == []


class TestTechnicalSignals:
    """RSI extremes and SMA crossovers."""

    def test_overbought_rsi_sells(self):
        bars = _make_bars([100 + i for i in range(15)])
        now = bars[-1].timestamp
        signals = SignalFuser().technical_signals("AAPL", bars, now)

        assert len(signals) == 1
        signal = signals[0]
        assert signal.signal_type == SignalType.SELL
        assert signal.strength == pytest.approx(1.0)
        assert signal.confidence == pytest.approx(0.7)
        assert signal.source == SignalSource.TECHNICAL_ANALYSIS
        assert signal.expiration == now + TECHNICAL_SIGNAL_TTL
        assert "OVERBOUGHT" in signal.explanation

    def test_oversold_rsi_buys(self):
        bars = _make_bars([100 - i for i in range(15)])
        now = bars[-1].timestamp
        signals = SignalFuser().technical_signals("AAPL", bars, now)

        assert [s.signal_type for s in signals] == [SignalType.BUY]
        assert "OVERSOLD" in signals[0].explanation

    def test_neutral_rsi_no_signal(self):
        bars = _make_bars([100, 101] * 10)
        now = bars[-1].timestamp
        assert SignalFuser().technical_signals("AAPL", bars, now) == []

    def test_bullish_crossover(self):
        # Falling fast SMA below slow, then a jump pulls it above
        bars = _make_bars([120 - i for i in range(20)] + [250])
        fuser = SignalFuser()
        now = bars[-1].timestamp
        signal = fuser.crossover_signal("AAPL", fuser.snapshot(bars), now)

        assert signal.signal_type == SignalType.BUY
        assert signal.strength == pytest.approx(0.8)
        assert signal.confidence == pytest.approx(0.75)
        assert "BULLISH_CROSSOVER" in signal.explanation

    def test_bearish_crossover(self):
        bars = _make_bars([100 + i for i in range(20)] + [10])
        fuser = SignalFuser()
        now = bars[-1].timestamp
        signal = fuser.crossover_signal("AAPL", fuser.snapshot(bars), now)

        assert signal.signal_type == SignalType.SELL
        assert "BEARISH_CROSSOVER" in signal.explanation

    def test_no_crossover_on_steady_trend(self):
        bars = _make_bars([100 + i for i in range(30)])
        fuser = SignalFuser()
        assert fuser.crossover_signal("AAPL", fuser.snapshot(bars), bars[-1].timestamp) is None

    def test_too_short_for_crossover(self):
        bars = _make_bars([100 + i for i in range(20)])
        fuser = SignalFuser()
        assert fuser.crossover_signal("AAPL", fuser.snapshot(bars), bars[-1].timestamp) is None

    def test_empty_bars(self):
        assert SignalFuser().technical_signals("AAPL", [], T0) == []
