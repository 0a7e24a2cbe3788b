"""
Pydantic schemas for run bookkeeping: stats, error records, resume pointer
"""

from pydantic import BaseModel, Field
from typing import Optional, Any
from datetime import datetime


class RunStats(BaseModel):
    """Cumulative counters stored on every ETL run"""
    extracted: int = 0
    loaded: int = 0
    duplicates: int = 0
    quarantined: int = 0
    errors: int = 0
    throttle_events: int = 0


class RunErrorRecord(BaseModel):
    """One entry of a run's ordered error list"""
    message: str
    detail: Optional[Any] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def to_json(self) -> dict:
        return {
            "message": self.message,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat(),
        }


class ResumePointer(BaseModel):
    """Checkpoint a new run resumes the file source from"""
    source: str
    batch_no: int
    offset: int = Field(..., ge=0)
