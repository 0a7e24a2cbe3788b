"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (SourceType, RunStatus,
          CheckpointStatus, QuarantineReason)
    etl_run: ETL run lifecycle, stats and error records
    checkpoint: Append-only batch checkpoints for resume
    schema_version: Accepted header drift of the tabular source
    market_data: Canonical market records, unique on (symbol, timestamp)
    raw_data: Append-only raw audit payloads
    quarantine: Records rejected by schema reconciliation or validation

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    JSONB on PostgreSQL and plain JSON elsewhere, so the same models run
    against the in-memory SQLite engine used by the test suite.

Usage:
    from models.market_data import MarketData
    from models.base import SourceType, RunStatus
"""

__all__ = [
    "Base",
    "SourceType",
    "RunStatus",
    "CheckpointStatus",
    "QuarantineReason",
    "ETLRun",
    "ETLCheckpoint",
    "SchemaVersion",
    "MarketData",
    "RawMarketData",
    "QuarantinedRecord",
]
