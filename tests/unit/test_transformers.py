"""
Unit tests for data transformers
"""

import math
import pytest
from datetime import datetime
from ingestion.transformers.field_rules import (
    FieldRule,
    parse_number,
    parse_symbol,
    parse_timestamp,
)
from ingestion.transformers.normalizer import DataNormalizer
from ingestion.transformers.validator import RecordValidator
from models.base import SourceType

NOON = datetime(2024, 10, 10, 12, 0, 0)


class TestFieldParsers:
    """Test raw value parsers"""

    @pytest.mark.parametrize("raw, expected", [
        ("68000.50", 68000.5),
        (" 42 ", 42.0),
        (7, 7.0),
        ("", None),
        ("n/a", None),
        (None, None),
        (True, None),
        ("nan", None),
        ("inf", None),
    ])
    def test_parse_number(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ("btc", "BTC"),
        ("BTC-USD", "BTC"),
        ("eth/usdt", "ETH"),
        ("SOL_USD", "SOL"),
        ("  ", None),
        (None, None),
    ])
    def test_parse_symbol(self, raw, expected):
        assert parse_symbol(raw) == expected

    def test_timestamp_units(self):
        assert parse_timestamp(1728561600) == NOON
        assert parse_timestamp(1728561600000) == NOON
        assert parse_timestamp("1728561600") == NOON

    def test_timestamp_iso(self):
        assert parse_timestamp("2024-10-10T12:00:00Z") == NOON
        assert parse_timestamp("2024-10-10T14:00:00+02:00") == NOON
        assert parse_timestamp("2024-10-10T12:00:00") == NOON

    def test_timestamp_unparseable(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None

    def test_field_rule_falls_back_to_next_candidate(self):
        rule = FieldRule("price_usd", ("priceUsd", "price"), parse_number)

        assert rule.resolve({"priceUsd": "", "price": "10.5"}) == 10.5
        assert rule.resolve({"other": 1}) is None


class TestDataNormalizer:
    """Test per-source normalization"""

    def test_normalize_asset_record(self):
        normalizer = DataNormalizer(SourceType.API_A)
        raw = {
            "id": "bitcoin",
            "symbol": "btc",
            "priceUsd": "68000.50",
            "volumeUsd24Hr": "1250000",
            "timestamp": 1728561600000,
        }

        result = normalizer.normalize(raw)

        assert result["symbol"] == "BTC"
        assert result["price_usd"] == 68000.5
        assert result["volume"] == 1250000.0
        assert result["timestamp"] == NOON
        assert result["source"] == SourceType.API_A
        assert result["extra_metadata"] == raw

    def test_normalize_csv_row(self):
        normalizer = DataNormalizer(SourceType.CSV)

        result = normalizer.normalize(
            {"ticker": "doge", "price_usd": "0.11", "tx_volume": "", "time": "1728561600"}
        )

        assert result["symbol"] == "DOGE"
        assert result["price_usd"] == 0.11
        assert result["volume"] is None
        assert result["timestamp"] == NOON

    def test_normalize_ticker_with_alternate_names(self):
        normalizer = DataNormalizer(SourceType.API_C)

        result = normalizer.normalize(
            {"market": "ADA-USD", "close": "0.35", "vol": "100", "ts": "2024-10-10T12:00:00Z"}
        )

        assert result["symbol"] == "ADA"
        assert result["price_usd"] == 0.35
        assert result["volume"] == 100.0
        assert result["timestamp"] == NOON

    def test_missing_timestamp_falls_back_to_now(self):
        normalizer = DataNormalizer(SourceType.API_C, clock=lambda: NOON)

        result = normalizer.normalize({"symbol": "ETH", "last": "3500"})

        assert result["timestamp"] == NOON

    def test_missing_price_is_none(self):
        result = DataNormalizer(SourceType.API_A).normalize({"symbol": "BTC"})

        assert result["price_usd"] is None


class TestRecordValidator:
    """Test the uniform validity filter"""

    def _candidate(self, **overrides):
        candidate = {
            "symbol": "BTC",
            "price_usd": 68000.5,
            "volume": 10.0,
            "source": SourceType.API_A,
            "timestamp": NOON,
            "extra_metadata": {"symbol": "BTC"},
        }
        candidate.update(overrides)
        return candidate

    def test_valid_records_pass(self):
        outcome = RecordValidator().validate([self._candidate(), self._candidate(symbol="eth")])

        assert len(outcome.valid) == 2
        assert outcome.valid[1].symbol == "ETH"
        assert outcome.valid[0].key == ("BTC", NOON)
        assert outcome.rejected == []

    @pytest.mark.parametrize("overrides", [
        {"symbol": None},
        {"symbol": "  "},
        {"price_usd": None},
        {"price_usd": math.inf},
        {"timestamp": None},
    ])
    def test_invalid_records_are_rejected(self, overrides):
        outcome = RecordValidator().validate([self._candidate(**overrides)])

        assert outcome.valid == []
        assert len(outcome.rejected) == 1
        assert outcome.rejected[0].reason

    def test_rejection_reason_names_the_field(self):
        outcome = RecordValidator().validate([self._candidate(price_usd=None)])

        assert "price_usd" in outcome.rejected[0].reason
