from sqlalchemy import Column, String, Integer, DateTime, Index
from datetime import datetime
from models.base import Base, BigIntPK, CheckpointStatus, enum_type


class ETLCheckpoint(Base):
    """
    Append-only log of how far a run has durably consumed a source.

    Purpose:
    - Resume a partially completed run from the last persisted batch
    - Audit batch-by-batch progress

    Design:
    - One row per (run_id, source, batch_no), never updated
    - offset is the number of source rows consumed after the batch
    - Written in the same transaction as the batch it covers
    """
    __tablename__ = "etl_checkpoints"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    run_id = Column(String(64), nullable=False, index=True)
    source = Column(String(32), nullable=False)
    batch_no = Column(Integer, nullable=False)
    offset = Column(Integer, nullable=False)

    status = Column(enum_type(CheckpointStatus), default=CheckpointStatus.PENDING, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_checkpoint_run_source_batch", "run_id", "source", "batch_no", unique=True),
    )
