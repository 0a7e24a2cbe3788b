"""
ETL pipeline components for market data ingestion.

This package contains all components for the Extract-Transform-Load pipeline:

Modules:
    base: Source adapter base class, extraction result and snapshot cache
    rate_limiter: Per-source token buckets for outbound API calls
    checkpoint: Resume discovery from the checkpoints of unfinished runs
    runner: ETL orchestrator that coordinates extract, transform, and load phases

Subpackages:
    extractors: Source adapters (asset API, ticker API, CSV file)
    transformers: Schema reconciliation, normalization and validation
    loaders: Idempotent upsert loader and run bookkeeping writes

Architecture:
    One run goes through these phases:

    1. Extract - Fetch every source concurrently, rate limited, with retry
       and last-known-good fallback for the APIs and offset resume for the file
    2. Transform - Reconcile file headers, normalize to the canonical record
       and quarantine whatever fails validation
    3. Load - Upsert canonical records per batch, checkpointing the file
       source in the batch's transaction

    Sources fail independently; a source that cannot be served at all fails
    the run, and every run is finalized with its status, stats and errors.

Usage:
    from core.database import async_session_maker
    from ingestion.runner import ETLRunner

Example:
    runner = ETLRunner.from_settings(async_session_maker)
    result = await runner.run(trigger="script")

    print(f"{result['status']}: loaded {result['stats']['loaded']} records")

Error Handling:
    All components use custom exceptions from core.exceptions; see that
    module for the retryable / non-retryable split.
"""

__all__ = [
    "DataSource",
    "ExtractResult",
    "SnapshotCache",
    "RateLimiterRegistry",
    "TokenBucket",
    "ResumeCursor",
    "ETLRunner",
    "AssetsAPIExtractor",
    "TickersAPIExtractor",
    "CSVExtractor",
    "SchemaReconciler",
    "DataNormalizer",
    "RecordValidator",
    "MarketDataLoader",
]
