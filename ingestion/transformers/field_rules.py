"""
Data-driven accessor rules mapping each source's raw fields to the
canonical record.

A FieldRule tries its candidate field names in priority order and returns
the first value its parser accepts. Adding a new upstream field name is a
one-line change to the tables below.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
import math
import re

from models.base import SourceType

Parser = Callable[[Any], Any]

SYMBOL_SEPARATORS = re.compile(r"[-/_:]")

# Unix times below this magnitude are seconds, at or above it milliseconds
MILLISECONDS_THRESHOLD = 1e12


def parse_number(value: Any) -> Optional[float]:
    """Finite float or None. Booleans are not numbers here."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (ValueError, TypeError):
        return None
    return number if math.isfinite(number) else None


def parse_symbol(value: Any) -> Optional[str]:
    """Uppercase ticker; compound tickers (BTC-USD, BTC/USD) keep the base."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip().upper()
    if not text:
        return None
    head = SYMBOL_SEPARATORS.split(text, maxsplit=1)[0].strip()
    return head or None


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accept Unix seconds, Unix milliseconds or ISO-8601 strings.

    Returns naive UTC, or None when the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)

    number = parse_number(value)
    if number is not None:
        millis = number * 1000 if abs(number) < MILLISECONDS_THRESHOLD else number
        try:
            return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            return None

    return None


@dataclass(frozen=True)
class FieldRule:
    """Resolve one canonical field from an ordered list of candidates."""
    target: str
    candidates: Tuple[str, ...]
    parser: Parser

    def resolve(self, record: Dict[str, Any]) -> Any:
        for name in self.candidates:
            if name in record:
                value = self.parser(record[name])
                if value is not None:
                    return value
        return None


SOURCE_RULES: Dict[SourceType, List[FieldRule]] = {
    SourceType.API_A: [
        FieldRule("symbol", ("symbol", "id"), parse_symbol),
        FieldRule("price_usd", ("priceUsd", "price_usd", "price"), parse_number),
        FieldRule("volume", ("volumeUsd24Hr", "volume"), parse_number),
        FieldRule("timestamp", ("timestamp", "updated", "last_updated"), parse_timestamp),
    ],
    SourceType.CSV: [
        FieldRule("symbol", ("ticker", "symbol"), parse_symbol),
        FieldRule("price_usd", ("price_usd", "price"), parse_number),
        FieldRule("volume", ("tx_volume", "volume"), parse_number),
        FieldRule("timestamp", ("time", "timestamp"), parse_timestamp),
    ],
    SourceType.API_C: [
        FieldRule(
            "symbol",
            ("symbol", "ticker", "pair", "market", "instrument_id", "base"),
            parse_symbol
        ),
        FieldRule(
            "price_usd",
            ("last_trade_price", "last", "price", "lastPrice", "close", "c"),
            parse_number
        ),
        FieldRule(
            "volume",
            ("volume_24h", "volume", "vol", "quoteVolume", "baseVolume", "v"),
            parse_number
        ),
        FieldRule(
            "timestamp",
            ("timestamp", "ts", "time", "updated_at", "last_updated"),
            parse_timestamp
        ),
    ],
}
