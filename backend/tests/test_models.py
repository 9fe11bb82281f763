"""Tests for core data models: bars, news, signals and run config."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pydantic
import pytest

from core.errors import ValidationError
from core.models import (
    BacktestConfig,
    NewsItem,
    PriceBar,
    SentimentLabel,
    Signal,
    SignalSource,
    SignalType,
    StrategyType,
    extract_symbols,
    label_for_score,
    validate_backtest_config,
)

NOW = datetime(2024, 1, 10, 15, 0, tzinfo=timezone.utc)


def _make_signal(**overrides) -> Signal:
    fields = dict(
        symbol="AAPL",
        signal_type=SignalType.BUY,
        strength=0.8,
        confidence=0.7,
        source=SignalSource.TECHNICAL_ANALYSIS,
        generated_at=NOW,
        expiration=NOW + timedelta(hours=4),
        explanation="Technical indicator: OVERSOLD (RSI 22.0)",
    )
    fields.update(overrides)
    return Signal(**fields)


def _make_config(**overrides) -> dict:
    config = {
        "strategyName": "rsi test",
        "symbols": ["AAPL", "MSFT"],
        "startDate": "2024-01-01T00:00:00Z",
        "endDate": "2024-02-01T00:00:00Z",
        "initialCapital": 100000,
        "strategyType": "rsiMeanReversion",
        "parameters": {},
    }
    config.update(overrides)
    return config


class TestPriceBar:
    """OHLC range invariant."""

    def test_valid_bar(self):
        bar = PriceBar(
            symbol="AAPL", timestamp=NOW, open=100, high=105, low=99, close=104, volume=1000
        )
        assert bar.is_bullish
        assert bar.range_size == Decimal("6")

    def test_close_above_high_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            PriceBar(
                symbol="AAPL", timestamp=NOW, open=100, high=105, low=99, close=106, volume=0
            )

    def test_open_below_low_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            PriceBar(
                symbol="AAPL", timestamp=NOW, open=98, high=105, low=99, close=100, volume=0
            )

    def test_negative_volume_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            PriceBar(
                symbol="AAPL", timestamp=NOW, open=100, high=100, low=100, close=100, volume=-1
            )


class TestNewsItem:
    """Sentiment labels and symbol extraction."""

    @pytest.mark.parametrize(
        "score,label",
        [
            (0.9, SentimentLabel.POSITIVE),
            (0.31, SentimentLabel.POSITIVE),
            (0.3, SentimentLabel.NEUTRAL),
            (0.0, SentimentLabel.NEUTRAL),
            (-0.3, SentimentLabel.NEUTRAL),
            (-0.31, SentimentLabel.NEGATIVE),
        ],
    )
    def test_label_for_score(self, score, label):
        assert label_for_score(score) == label

    def test_extract_symbols_skips_stop_list(self):
        text = "AAPL and MSFT CEO talks AI at IPO event, says SEC"
        assert extract_symbols(text) == frozenset({"AAPL", "MSFT"})

    def test_extract_symbols_ignores_lowercase_and_long_tokens(self):
        assert extract_symbols("aapl TOOLONGX A") == frozenset()

    def test_from_article_derives_label_and_symbols(self):
        item = NewsItem.from_article(
            title="TSLA deliveries beat estimates",
            content="",
            published_at=NOW,
            sentiment_score=-0.8,
        )
        assert item.sentiment_label == SentimentLabel.NEGATIVE
        assert item.symbols == frozenset({"TSLA"})
        assert item.mentions("tsla")
        assert not item.mentions("AAPL")

    def test_from_article_explicit_symbols(self):
        item = NewsItem.from_article(
            title="Chipmakers rally",
            content="",
            published_at=NOW,
            sentiment_score=0.5,
            symbols={"nvda"},
            id="n-1",
        )
        assert item.symbols == frozenset({"NVDA"})
        assert item.id == "n-1"

    def test_score_out_of_range_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            NewsItem.from_article("AAPL", "", NOW, 1.5)


class TestSignal:
    """Signal construction and expiry."""

    def test_id_is_deterministic(self):
        assert _make_signal().id == _make_signal().id
        assert len(_make_signal().id) == 32

    def test_id_changes_with_attributes(self):
        assert _make_signal().id != _make_signal(symbol="MSFT").id
        assert _make_signal().id != _make_signal(generated_at=NOW + timedelta(minutes=1),
                                                 expiration=NOW + timedelta(hours=5)).id

    def test_expiration_must_follow_generation(self):
        with pytest.raises(pydantic.ValidationError):
            _make_signal(expiration=NOW)

    def test_blank_explanation_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            _make_signal(explanation="   ")

    def test_strength_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            _make_signal(strength=1.2)
        with pytest.raises(pydantic.ValidationError):
            _make_signal(confidence=-0.1)

    def test_is_expired(self):
        signal = _make_signal()
        assert not signal.is_expired(NOW + timedelta(hours=4))
        assert signal.is_expired(NOW + timedelta(hours=4, seconds=1))

    def test_neutral_not_actionable(self):
        assert _make_signal().is_actionable
        assert not _make_signal(signal_type=SignalType.NEUTRAL).is_actionable

    def test_frozen(self):
        signal = _make_signal()
        with pytest.raises(pydantic.ValidationError):
            signal.strength = 0.1


class TestBacktestConfig:
    """Run config validation."""

    def test_camel_case_keys(self):
        config = validate_backtest_config(_make_config())
        assert isinstance(config, BacktestConfig)
        assert config.strategy_type == StrategyType.RSI_MEAN_REVERSION
        assert config.initial_capital == Decimal("100000")
        assert config.symbols == ["AAPL", "MSFT"]

    def test_symbols_normalized_and_deduplicated(self):
        config = validate_backtest_config(_make_config(symbols=[" aapl", "AAPL", "msft"]))
        assert config.symbols == ["AAPL", "MSFT"]

    def test_passthrough_instance(self):
        config = validate_backtest_config(_make_config())
        assert validate_backtest_config(config) is config

    @pytest.mark.parametrize(
        "overrides",
        [
            {"symbols": []},
            {"symbols": ["A", "B", "C", "D", "E", "F", "G", "H", "I", "J", "K"]},
            {"symbols": ["AAPL1"]},
            {"symbols": ["TOOLONG"]},
            {"initialCapital": 99},
            {"endDate": "2024-01-01T00:00:00Z"},
            {"endDate": "2023-12-01T00:00:00Z"},
            {"strategyType": "momentum"},
            {"strategyName": ""},
        ],
    )
    def test_invalid_config_rejected(self, overrides):
        with pytest.raises(ValidationError):
            validate_backtest_config(_make_config(**overrides))

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_backtest_config(_make_config(symbols=[]))

    def test_ten_symbols_allowed(self):
        symbols = ["AA", "BB", "CC", "DD", "EE", "FF", "GG", "HH", "II", "JJ"]
        config = validate_backtest_config(_make_config(symbols=symbols))
        assert len(config.symbols) == 10

    def test_dates_without_zone_read_as_utc(self):
        config = validate_backtest_config(
            _make_config(startDate="2024-01-01", endDate="2024-03-01T09:30:00")
        )
        assert config.start_date == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert config.end_date == datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    def test_dates_with_zone_kept(self):
        config = validate_backtest_config(
            _make_config(startDate="2024-01-01T00:00:00-05:00")
        )
        assert config.start_date.utcoffset() == timedelta(hours=-5)
