"""
Core utilities and configuration for the market data ETL system.

Modules:
    config: Application configuration and environment variable management
    database: Async database engine and session factory
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    metrics: Prometheus counters and histograms

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import APIExtractionError, NetworkError
    from core.logging import setup_logging

Example:
    setup_logging()

    async with async_session_maker() as session:
        ...
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ExtractionError",
    "APIExtractionError",
    "CSVExtractionError",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "TransformationError",
    "SchemaDriftError",
    "DataFormatError",
    "LoadError",
    "UpsertError",
    "CheckpointError",
    "RunInProgressError",
    "RetryableError",
    "NonRetryableError",
]
