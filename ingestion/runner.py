# ============================================================================
# File: ingestion/runner.py
# Description: Multi-source ETL orchestrator with run lifecycle bookkeeping
# ============================================================================
"""
ETL Runner - Orchestrates Extract, Transform, Load across all sources.

This module provides run orchestration with:
- Single-flight guard (one run at a time per runner)
- Checkpoint-based resume of the file source
- Concurrent extraction with independent per-source failure
- Schema drift reconciliation, normalization and validation
- Idempotent load in its own failure boundary
- Exactly one finalization per run (status, stats, errors, metrics)
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from datetime import datetime
import asyncio
import time
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, settings as default_settings
from core.exceptions import ETLException, RunInProgressError, SchemaDriftError
from core.metrics import ROWS_PROCESSED, RUN_LATENCY, record_error
from ingestion.base import DataSource, ExtractResult
from ingestion.checkpoint import ResumeCursor
from ingestion.extractors.api_extractor import AssetsAPIExtractor, TickersAPIExtractor
from ingestion.extractors.csv_extractor import CSVExtractor
from ingestion.loaders.market_loader import LoadBatch, MarketDataLoader
from ingestion.rate_limiter import RateLimiterRegistry
from ingestion.transformers.normalizer import DataNormalizer
from ingestion.transformers.schema_reconciler import ReconcileAction, SchemaReconciler
from ingestion.transformers.validator import RecordValidator
from models.base import QuarantineReason, RunStatus
from models.etl_run import ETLRun, new_run_id
from schemas.etl import ResumePointer, RunErrorRecord, RunStats

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


def _error_record(message: str, error: Optional[BaseException] = None, **detail) -> Dict[str, Any]:
    """Build a JSON-safe entry for the run's error list."""
    if isinstance(error, ETLException):
        payload = error.to_dict()
    elif error is not None:
        payload = {"error_type": type(error).__name__, "message": str(error)}
    else:
        payload = {}
    payload.update(detail)
    return RunErrorRecord(message=message, detail=payload or None).to_json()


class _RunState:
    """Mutable bookkeeping of one run, finalized exactly once."""

    def __init__(self):
        self.stats = RunStats()
        self.errors: List[Dict[str, Any]] = []
        self.failed = False
        self.warned = False
        self.resume_from: Optional[ResumePointer] = None

    def error(
        self,
        message: str,
        error: Optional[BaseException] = None,
        kind: Optional[str] = None,
        **detail
    ):
        self.errors.append(_error_record(message, error, **detail))
        record_error(kind or getattr(error, "kind", "unexpected"))

    @property
    def status(self) -> RunStatus:
        if self.failed:
            return RunStatus.FAILED
        if self.warned or self.stats.quarantined:
            return RunStatus.COMPLETED_WITH_WARNINGS
        return RunStatus.COMPLETED


class ETLRunner:
    """
    Orchestrate one ETL run over every configured source.

    Lifecycle: started -> completed | completed_with_warnings | failed.

    Responsibilities:
    - Reject overlapping runs
    - Resume the file source from the last unfinished run's checkpoint
    - Extract, reconcile, normalize, validate and load
    - Record accurate run stats and errors, and emit metrics
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        sources: Sequence[DataSource],
        reconciler: SchemaReconciler,
        rate_limiter: Optional[RateLimiterRegistry] = None,
        batch_size: int = 500
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.session_factory = session_factory
        self.sources = list(sources)
        self.reconciler = reconciler
        self.rate_limiter = rate_limiter
        self.batch_size = batch_size
        self.validator = RecordValidator()
        self._lock = asyncio.Lock()
        self._pending = False

    @classmethod
    def from_settings(
        cls,
        session_factory: SessionFactory,
        settings: Optional[Settings] = None
    ) -> "ETLRunner":
        """Wire the default three sources, a shared limiter registry and the reconciler."""
        settings = settings or default_settings

        rate_limiter = RateLimiterRegistry(
            capacity=settings.RATE_LIMIT_CAPACITY,
            tokens_per_interval=settings.RATE_LIMIT_TOKENS_PER_INTERVAL,
            interval=settings.RATE_LIMIT_INTERVAL_SECONDS,
            poll_interval=settings.RATE_LIMIT_POLL_SECONDS
        )
        retry_options = {
            "max_retries": settings.MAX_RETRIES,
            "retry_delay": settings.RETRY_BACKOFF_SECONDS,
            "timeout": settings.REQUEST_TIMEOUT_SECONDS,
        }

        sources = [
            AssetsAPIExtractor(
                settings.SOURCE_A_URL,
                rate_limiter,
                api_key=settings.SOURCE_A_API_KEY,
                **retry_options
            ),
            CSVExtractor(settings.CSV_FILE_PATH),
            TickersAPIExtractor(settings.SOURCE_C_URL, rate_limiter, **retry_options),
        ]

        return cls(
            session_factory=session_factory,
            sources=sources,
            reconciler=SchemaReconciler(
                settings.CSV_CANONICAL_HEADERS,
                threshold=settings.SCHEMA_MATCH_THRESHOLD
            ),
            rate_limiter=rate_limiter,
            batch_size=settings.ETL_BATCH_SIZE
        )

    @property
    def is_running(self) -> bool:
        return self._pending or self._lock.locked()

    def claim(self, trigger: str = "manual") -> None:
        """
        Reserve the next run before it starts, e.g. while it waits in a
        background task. The claimed run must call ``run(claimed=True)``.
        """
        if self.is_running:
            raise RunInProgressError(
                "An ETL run is already in progress",
                context={"trigger": trigger}
            )
        self._pending = True

    async def run(self, trigger: str = "manual", claimed: bool = False) -> Dict[str, Any]:
        """
        Execute one run.

        Returns:
            {"run_id", "status", "stats", "errors"}

        Raises:
            RunInProgressError: another run of this runner is executing or claimed
        """
        if self._lock.locked() or (self._pending and not claimed):
            raise RunInProgressError(
                "An ETL run is already in progress",
                context={"trigger": trigger}
            )

        async with self._lock:
            self._pending = False
            async with self.session_factory() as session:
                return await self._execute(session, trigger)

    async def _execute(self, session: AsyncSession, trigger: str) -> Dict[str, Any]:
        started = time.monotonic()
        state = _RunState()

        run = ETLRun(run_id=new_run_id(), trigger=trigger, status=RunStatus.STARTED)
        session.add(run)
        await session.commit()
        run_pk, run_id = run.id, run.run_id

        logger.info(f"ETL run {run_id} started (trigger={trigger})")

        try:
            # --------------------------------------------------
            # RESUME DISCOVERY
            # --------------------------------------------------
            offsets: Dict[str, int] = {}
            for source in self.sources:
                if not source.resumable:
                    continue
                pointer = await ResumeCursor(session, source.source_name).discover(run_id)
                if pointer is not None:
                    offsets[source.source_name] = pointer.offset
                    state.resume_from = pointer

            # --------------------------------------------------
            # EXTRACTION (concurrent, independent failures)
            # --------------------------------------------------
            extracted = await self._extract_all(offsets, state)

            if not state.failed:
                # --------------------------------------------------
                # TRANSFORM
                # --------------------------------------------------
                plan = self._transform(extracted, state)

                # --------------------------------------------------
                # LOAD
                # --------------------------------------------------
                await self._load(session, run_id, plan, state)

        except Exception as e:
            logger.exception(f"Unexpected error in ETL run {run_id}")
            await session.rollback()
            state.failed = True
            state.error("Unexpected error in ETL pipeline", e, kind="unexpected")

        return await self._finalize(session, run_pk, run_id, started, state)

    async def _extract_all(
        self,
        offsets: Dict[str, int],
        state: _RunState
    ) -> List[Tuple[DataSource, ExtractResult]]:
        throttled_before = self._throttle_snapshot()

        results = await asyncio.gather(
            *(source.extract(offset=offsets.get(source.source_name, 0)) for source in self.sources),
            return_exceptions=True
        )

        extracted: List[Tuple[DataSource, ExtractResult]] = []
        for source, result in zip(self.sources, results):
            if isinstance(result, Exception):
                logger.error(f"Extraction failed for {source.source_name}: {result}")
                state.failed = True
                state.error(
                    f"Extraction failed for {source.source_name}",
                    result,
                    kind=getattr(result, "kind", "extraction")
                )
                continue
            if isinstance(result, BaseException):
                raise result

            state.stats.extracted += len(result.records)
            if self.rate_limiter is None:
                state.stats.throttle_events += result.throttle_events

            if result.from_cache:
                state.warned = True
                state.errors.append(_error_record(
                    f"Served cached snapshot for {source.source_name}",
                    source=source.source_name,
                    records=len(result.records)
                ))

            extracted.append((source, result))

        if self.rate_limiter is not None:
            state.stats.throttle_events += sum(
                self.rate_limiter.throttle_events(name) - count
                for name, count in throttled_before.items()
            )

        return extracted

    def _throttle_snapshot(self) -> Dict[str, int]:
        if self.rate_limiter is None:
            return {}
        return {s.source_name: self.rate_limiter.throttle_events(s.source_name) for s in self.sources}

    def _transform(
        self,
        extracted: List[Tuple[DataSource, ExtractResult]],
        state: _RunState
    ) -> "_LoadPlan":
        plan = _LoadPlan()

        for source, result in extracted:
            plan.raw.append((result.source, result.records))
            records = result.records

            if result.headers:
                reconciliation = self.reconciler.reconcile(result.headers)

                if reconciliation.action == ReconcileAction.DROPPED:
                    drift = SchemaDriftError(
                        "Schema drift below confidence threshold, batch dropped",
                        context={
                            "source": result.source.value,
                            "observed_headers": reconciliation.observed_headers,
                            "confidence": round(reconciliation.confidence, 4),
                            "rows": len(records),
                        }
                    )
                    state.warned = True
                    state.error(f"Schema drift detected for {result.source.value}", drift)
                    state.stats.quarantined += len(records)
                    plan.quarantine.append((
                        result.source,
                        QuarantineReason.LOW_CONFIDENCE_SCHEMA,
                        records,
                        reconciliation.confidence,
                        f"observed headers: {', '.join(reconciliation.observed_headers)}"
                    ))
                    records = []

                elif not reconciliation.mapping and reconciliation.unresolved:
                    # Nothing to rename; rows go to validation as they are
                    logger.warning(
                        f"No usable header mapping for {result.source.value}, "
                        f"missing {reconciliation.unresolved}"
                    )

                elif reconciliation.action == ReconcileAction.MAPPED:
                    plan.schema_versions.append((
                        result.source.value,
                        reconciliation.observed_headers,
                        reconciliation.mapping,
                        reconciliation.confidence
                    ))
                    records = self.reconciler.apply(records, reconciliation.mapping)

            normalizer = DataNormalizer(result.source)
            chunks = [
                records[i:i + self.batch_size] for i in range(0, len(records), self.batch_size)
            ]
            if source.resumable and not chunks:
                chunks = [[]]

            covered = 0
            for chunk in chunks:
                outcome = self.validator.validate(normalizer.normalize_many(chunk))

                if outcome.rejected:
                    state.stats.quarantined += len(outcome.rejected)
                    for rejected in outcome.rejected:
                        plan.quarantine.append((
                            result.source,
                            QuarantineReason.VALIDATION_ERROR,
                            [rejected.candidate["extra_metadata"]],
                            None,
                            rejected.reason
                        ))

                covered += len(chunk)
                offset = None
                if source.resumable:
                    # Rows consumed so far; the last batch covers the whole extraction
                    offset = (
                        result.next_offset if covered == len(records)
                        else result.start_offset + covered
                    )
                plan.batches.append((result.source, outcome.valid, offset))

        return plan

    async def _load(self, session: AsyncSession, run_id: str, plan: "_LoadPlan", state: _RunState):
        loader = MarketDataLoader(session)

        try:
            for source, payloads in plan.raw:
                await loader.append_raw(run_id, source, payloads)

            for source, reason, payloads, confidence, detail in plan.quarantine:
                await loader.quarantine(run_id, source, reason, payloads, confidence, detail)

            for source, headers, mapping, confidence in plan.schema_versions:
                await loader.save_schema_version(source, headers, mapping, confidence)

            loaded_keys: set = set()
            for batch_no, (source, records, offset) in enumerate(plan.batches, start=1):
                result = await loader.load_batch(
                    run_id,
                    LoadBatch(source=source, batch_no=batch_no, records=records, checkpoint_offset=offset),
                    loaded_keys
                )
                state.stats.loaded += result.loaded
                state.stats.duplicates += result.duplicates

            await session.commit()

        except Exception as e:
            logger.error(
                f"Load phase failed for run {run_id}: {e}",
                extra={"error_context": e.to_dict() if isinstance(e, ETLException) else {}}
            )
            await session.rollback()
            state.failed = True
            state.error(f"Load phase failed: {e}", e, kind="load")

    async def _finalize(
        self,
        session: AsyncSession,
        run_pk: int,
        run_id: str,
        started: float,
        state: _RunState
    ) -> Dict[str, Any]:
        duration = time.monotonic() - started
        status = state.status
        state.stats.errors = len(state.errors)
        stats = state.stats.dict()

        await session.execute(
            update(ETLRun)
            .where(ETLRun.id == run_pk)
            .values(
                status=status,
                end_time=datetime.utcnow(),
                duration_seconds=duration,
                stats=stats,
                errors=state.errors,
                resume_from=state.resume_from.dict() if state.resume_from else None
            )
        )
        await session.commit()

        ROWS_PROCESSED.inc(state.stats.loaded)
        RUN_LATENCY.labels(status=status.value).observe(duration)

        logger.info(
            f"ETL run {run_id} finished: {status.value} in {duration:.2f}s - "
            f"Extracted: {stats['extracted']}, Loaded: {stats['loaded']}, "
            f"Duplicates: {stats['duplicates']}, Quarantined: {stats['quarantined']}, "
            f"Errors: {stats['errors']}"
        )

        return {
            "run_id": run_id,
            "status": status.value,
            "stats": stats,
            "errors": state.errors,
        }


class _LoadPlan:
    """Everything the load phase writes, collected before any write happens."""

    def __init__(self):
        self.raw: List[tuple] = []
        self.quarantine: List[tuple] = []
        self.schema_versions: List[tuple] = []
        self.batches: List[tuple] = []
