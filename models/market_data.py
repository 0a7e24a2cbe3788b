from sqlalchemy import Column, String, Float, DateTime, Index
from datetime import datetime
from models.base import Base, BigIntPK, JSONType, SourceType, enum_type


class MarketData(Base):
    """
    Canonical, validated market observations from all sources.

    Field Mapping Strategy:

    Source A (asset API):
    - symbol -> symbol
    - priceUsd -> price_usd
    - volumeUsd24Hr -> volume
    - timestamp (item or envelope) -> timestamp

    Source B (CSV):
    - ticker -> symbol
    - price_usd -> price_usd
    - tx_volume -> volume
    - time -> timestamp

    Source C (ticker API):
    - symbol / pair / market -> symbol (first segment of compound tickers)
    - last_trade_price / last / price -> price_usd
    - volume_24h / volume -> volume
    - timestamp / ts / time -> timestamp

    (symbol, timestamp) identifies one logical observation; the loader
    upserts on that key so re-extraction never creates duplicates.
    """
    __tablename__ = "market_data"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    symbol = Column(String(50), nullable=False, index=True)
    price_usd = Column(Float, nullable=True)
    volume = Column(Float, nullable=True)
    source = Column(enum_type(SourceType), nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)

    # Raw payload echo
    extra_metadata = Column(JSONType, nullable=True)

    etl_run_id = Column(String(64), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_market_symbol_timestamp", "symbol", "timestamp", unique=True),
    )
