"""
Prometheus metrics for the ETL pipeline.

The collectors live on the default prometheus-client registry so that the
API's /metrics endpoint (or any external exporter) can scrape them.
"""

from prometheus_client import Counter, Histogram, REGISTRY

ROWS_PROCESSED = Counter(
    "etl_rows_processed",
    "Canonical records upserted by the loader",
    registry=REGISTRY
)

ETL_ERRORS = Counter(
    "etl_errors",
    "ETL errors by kind",
    ["kind"],
    registry=REGISTRY
)

RUN_LATENCY = Histogram(
    "etl_run_latency_seconds",
    "Wall-clock duration of ETL runs",
    ["status"],
    registry=REGISTRY,
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")]
)

THROTTLE_EVENTS = Counter(
    "throttle_events",
    "Rate limiter rejections by source",
    ["source"],
    registry=REGISTRY
)


def record_error(kind: str) -> None:
    ETL_ERRORS.labels(kind=kind).inc()


def record_throttle(source: str) -> None:
    THROTTLE_EVENTS.labels(source=source).inc()
