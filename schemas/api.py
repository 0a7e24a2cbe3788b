"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from models.base import RunStatus


# ============================================================================
# Trigger Schemas
# ============================================================================

class TriggerResponse(BaseModel):
    """Acknowledgement returned by POST /refresh"""
    message: str
    accepted_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "message": "ETL process has been triggered. It will run in the background.",
                "accepted_at": "2025-10-10T12:00:00Z",
            }
        }


# ============================================================================
# Health Check Schemas
# ============================================================================

class LatestRunInfo(BaseModel):
    """Latest ETL run as reported by the health check"""
    run_id: str
    status: RunStatus
    start_time: datetime
    end_time: Optional[datetime] = None

    class Config:
        from_attributes = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    database_connected: bool
    latest_run: Optional[LatestRunInfo] = None
    run_in_progress: bool = False
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")

    @classmethod
    def build(
        cls,
        database_connected: bool,
        latest_run: Optional[LatestRunInfo] = None,
        run_in_progress: bool = False
    ) -> "HealthCheckResponse":
        """Derive overall health from the database and the latest run"""
        if not database_connected:
            status = "unhealthy"
        elif latest_run is not None and latest_run.status == RunStatus.FAILED:
            status = "degraded"
        else:
            status = "healthy"

        return cls(
            database_connected=database_connected,
            latest_run=latest_run,
            run_in_progress=run_in_progress,
            status=status,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "database_connected": True,
                "latest_run": {
                    "run_id": "run_6f1c...",
                    "status": "completed",
                    "start_time": "2025-10-10T12:00:00Z",
                    "end_time": "2025-10-10T12:00:04Z",
                },
                "run_in_progress": False,
                "timestamp": "2025-10-10T12:01:00Z",
                "status": "healthy",
            }
        }
