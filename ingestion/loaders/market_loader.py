"""
Load canonical market records with upsert logic (idempotency), plus the
append-only audit, quarantine, schema-version and checkpoint writes
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set
import time
import logging

from sqlalchemy import select, func, tuple_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import CheckpointError, UpsertError
from models.base import CheckpointStatus, QuarantineReason, SourceType
from models.checkpoint import ETLCheckpoint
from models.market_data import MarketData
from models.quarantine import QuarantinedRecord
from models.raw_data import RawMarketData
from models.schema_version import SchemaVersion
from schemas.normalized import MarketRecordCreate

logger = logging.getLogger(__name__)

UPSERT_COLUMNS = ("price_usd", "volume", "source", "extra_metadata", "etl_run_id", "updated_at")


@dataclass
class LoadBatch:
    """
    One unit of work for the loader.

    ``checkpoint_offset`` is set only for batches of a resumable source; the
    loader then writes the checkpoint in the batch's transaction.
    """
    source: SourceType
    batch_no: int
    records: List[MarketRecordCreate]
    checkpoint_offset: Optional[int] = None


@dataclass
class LoadResult:
    loaded: int = 0
    duplicates: int = 0

    def __add__(self, other: "LoadResult") -> "LoadResult":
        return LoadResult(self.loaded + other.loaded, self.duplicates + other.duplicates)


class MarketDataLoader:
    """
    Persist canonical records and run bookkeeping.

    Ensures:
    - No duplicate rows on repeated runs ((symbol, timestamp) upsert)
    - Updates existing records if source data changes
    - A batch and its checkpoint commit or roll back together
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise UpsertError(
            f"Upsert is not supported on dialect {dialect}",
            context={"dialect": dialect}
        )

    async def append_raw(
        self,
        run_id: str,
        source: SourceType,
        payloads: Sequence[Dict[str, Any]]
    ) -> int:
        """Append raw audit rows; replays intentionally add new rows."""
        self.db.add_all([
            RawMarketData(source=source, payload=payload, etl_run_id=run_id)
            for payload in payloads
        ])
        await self.db.flush()
        return len(payloads)

    async def quarantine(
        self,
        run_id: str,
        source: SourceType,
        reason: QuarantineReason,
        payloads: Sequence[Dict[str, Any]],
        confidence: Optional[float] = None,
        detail: Optional[str] = None
    ) -> int:
        self.db.add_all([
            QuarantinedRecord(
                run_id=run_id,
                source=source,
                reason=reason,
                payload=payload,
                confidence_score=confidence,
                detail=detail
            )
            for payload in payloads
        ])
        await self.db.flush()
        if payloads:
            logger.warning(f"Quarantined {len(payloads)} {source.value} records ({reason.value})")
        return len(payloads)

    async def save_schema_version(
        self,
        source: str,
        headers: List[str],
        mappings: Dict[str, str],
        confidence: float
    ) -> SchemaVersion:
        """
        Record accepted header drift.

        The version is the current epoch in milliseconds, bumped past the
        latest stored version for the source so (source, version) stays unique.
        """
        latest = await self.db.scalar(
            select(func.max(SchemaVersion.version)).where(SchemaVersion.source == source)
        )
        version = int(time.time() * 1000)
        if latest is not None and version <= latest:
            version = latest + 1

        schema_version = SchemaVersion(
            source=source,
            version=version,
            observed_headers=list(headers),
            mappings=dict(mappings),
            confidence=confidence
        )
        self.db.add(schema_version)
        await self.db.flush()

        logger.info(f"Saved schema version {version} for {source} (confidence {confidence:.3f})")
        return schema_version

    async def _existing_keys(self, records: Iterable[MarketRecordCreate]) -> set:
        keys = [r.key for r in records]
        if not keys:
            return set()
        result = await self.db.execute(
            select(MarketData.symbol, MarketData.timestamp)
            .where(tuple_(MarketData.symbol, MarketData.timestamp).in_(keys))
        )
        return {(symbol, ts) for symbol, ts in result.all()}

    async def load_batch(
        self,
        run_id: str,
        batch: LoadBatch,
        loaded_keys: Optional[Set[tuple]] = None
    ) -> LoadResult:
        """
        Upsert one batch and, if it carries one, write its checkpoint.

        Args:
            run_id: Run the batch belongs to
            batch: Records and checkpoint offset
            loaded_keys: Keys already loaded earlier in the same run; those
                count only as duplicates. Updated after the batch commits.

        Returns:
            LoadResult with distinct keys loaded for the first time in the
            run and duplicates seen (repeated inside the batch or already stored)

        Raises:
            CheckpointError: checkpoint (run_id, source, batch_no) already exists
            UpsertError: any other persistence failure
        """
        # Last occurrence of a key wins
        unique: Dict[tuple, MarketRecordCreate] = {}
        for record in batch.records:
            unique[record.key] = record
        duplicates = len(batch.records) - len(unique)

        context = {
            "run_id": run_id,
            "source": batch.source.value,
            "batch_no": batch.batch_no,
            "records": len(batch.records),
        }

        try:
            existing = await self._existing_keys(unique.values())
            duplicates += sum(1 for key in unique if key in existing)

            insert = self._insert()
            now = datetime.utcnow()
            for record in unique.values():
                values = record.dict()
                values.update(etl_run_id=run_id, created_at=now, updated_at=now)

                stmt = insert(MarketData).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["symbol", "timestamp"],
                    set_={col: getattr(stmt.excluded, col) for col in UPSERT_COLUMNS}
                )
                await self.db.execute(stmt)

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError("Failed to upsert batch", context=context, original_exception=e)

        if batch.checkpoint_offset is not None:
            self.db.add(ETLCheckpoint(
                run_id=run_id,
                source=batch.source.value,
                batch_no=batch.batch_no,
                offset=batch.checkpoint_offset,
                status=CheckpointStatus.COMPLETED
            ))

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if batch.checkpoint_offset is not None:
                raise CheckpointError(
                    "Checkpoint already exists",
                    context={**context, "offset": batch.checkpoint_offset},
                    original_exception=e
                )
            raise UpsertError("Failed to commit batch", context=context, original_exception=e)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpsertError("Failed to commit batch", context=context, original_exception=e)

        loaded = len(unique)
        if loaded_keys is not None:
            loaded -= sum(1 for key in unique if key in loaded_keys)
            loaded_keys.update(unique)

        logger.info(
            f"Batch {batch.batch_no} ({batch.source.value}): loaded {loaded}, "
            f"duplicates {duplicates}"
        )
        return LoadResult(loaded=loaded, duplicates=duplicates)

    async def load(self, run_id: str, batches: Sequence[LoadBatch]) -> LoadResult:
        """Load batches of one run in order, summing their results."""
        total = LoadResult()
        loaded_keys: Set[tuple] = set()
        for batch in batches:
            total = total + await self.load_batch(run_id, batch, loaded_keys)
        return total
