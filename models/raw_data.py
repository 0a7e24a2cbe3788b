from sqlalchemy import Column, String, DateTime, Index
from datetime import datetime
from models.base import Base, BigIntPK, JSONType, SourceType, enum_type


class RawMarketData(Base):
    """
    Stores raw, unprocessed items from all sources.

    Purpose:
    - Audit trail of exactly what each source returned
    - Reprocessing and debugging

    Design Decisions:
    - Append-only, no uniqueness key: replays duplicate raw rows, only the
      canonical table is idempotent
    """
    __tablename__ = "raw_market_data"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    source = Column(enum_type(SourceType), nullable=False, index=True)
    payload = Column(JSONType, nullable=False)

    etl_run_id = Column(String(64), nullable=True, index=True)
    ingested_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_raw_source_ingested", "source", "ingested_at"),
    )
