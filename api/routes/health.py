"""
Health check endpoint with database and ETL run status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db, get_runner
from ingestion.runner import ETLRunner
from models.etl_run import ETLRun
from schemas.api import HealthCheckResponse, LatestRunInfo
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    runner: ETLRunner = Depends(get_runner)
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Latest ETL run id and status
    - Whether a run is executing right now
    """
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection failed: {str(e)}")
        return HealthCheckResponse.build(
            database_connected=False,
            run_in_progress=runner.is_running
        )

    latest = await db.scalar(
        select(ETLRun).order_by(ETLRun.start_time.desc(), ETLRun.id.desc()).limit(1)
    )

    return HealthCheckResponse.build(
        database_connected=True,
        latest_run=LatestRunInfo.model_validate(latest) if latest else None,
        run_in_progress=runner.is_running
    )
