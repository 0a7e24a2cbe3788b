"""
Pydantic schemas for data validation and serialization.

Schemas:
    normalized: Canonical market record validated before loading
    etl: Run stats, run error records and the resume pointer
    api: API endpoint request/response schemas

Usage:
    from schemas.normalized import MarketRecordCreate
    from schemas.etl import RunStats

Example:
    record = MarketRecordCreate(
        symbol="btc",
        price_usd=68500.5,
        source=SourceType.CSV,
        timestamp=datetime(2025, 10, 10, 12),
    )
    assert record.symbol == "BTC"

Validation:
    MarketRecordCreate is the uniform validity filter applied to every
    source after normalization: records failing it are quarantined.
"""

__all__ = [
    "MarketRecordCreate",
    "RunStats",
    "RunErrorRecord",
    "ResumePointer",
    "TriggerResponse",
    "HealthCheckResponse",
]
