from sqlalchemy import Column, String, DateTime, Float, Index
from datetime import datetime
import uuid
from models.base import Base, BigIntPK, JSONType, RunStatus, enum_type


def new_run_id() -> str:
    return f"run_{uuid.uuid4()}"


def empty_stats() -> dict:
    return {
        "extracted": 0,
        "loaded": 0,
        "duplicates": 0,
        "quarantined": 0,
        "errors": 0,
        "throttle_events": 0,
    }


class ETLRun(Base):
    """
    One execution of the multi-source ETL pipeline.

    Purpose:
    - Audit trail of all runs and their outcome
    - Resume discovery (a run that did not complete may be resumed)
    - Latency and error statistics

    Lifecycle:
    - Created in ``started`` state when the run begins
    - Finalized exactly once with end_time, terminal status, stats and errors
    """
    __tablename__ = "etl_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(String(64), default=new_run_id, unique=True, nullable=False, index=True)
    trigger = Column(String(32), nullable=True)

    status = Column(enum_type(RunStatus), default=RunStatus.STARTED, nullable=False)

    # Timestamps
    start_time = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_time = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # {extracted, loaded, duplicates, quarantined, errors, throttle_events}
    stats = Column(JSONType, nullable=False, default=empty_stats)

    # {source, batch_no, offset} of the checkpoint this run resumed from
    resume_from = Column(JSONType, nullable=True)

    # Ordered list of {message, detail, timestamp}
    errors = Column(JSONType, nullable=False, default=list)

    __table_args__ = (
        Index("idx_etl_run_status_started", "status", "start_time"),
    )
