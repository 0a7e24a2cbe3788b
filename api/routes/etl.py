"""
ETL trigger and metrics endpoints
"""

from datetime import datetime
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from api.dependencies import get_runner
from core.exceptions import RunInProgressError
from ingestion.runner import ETLRunner
from schemas.api import TriggerResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["ETL"])


async def _run_in_background(runner: ETLRunner, trigger: str) -> None:
    try:
        result = await runner.run(trigger=trigger, claimed=True)
        logger.info(f"Triggered run {result['run_id']} finished with status {result['status']}")
    except RunInProgressError as e:
        logger.warning(f"Trigger ignored: {e.message}")


@router.post(
    "/refresh",
    response_model=TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED
)
async def refresh(
    background_tasks: BackgroundTasks,
    runner: ETLRunner = Depends(get_runner)
):
    """
    Start an ETL run in the background.

    Returns 202 immediately, or 409 if a run is already in progress.
    """
    try:
        runner.claim(trigger="api")
    except RunInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

    background_tasks.add_task(_run_in_background, runner, "api")
    logger.info("ETL run accepted")

    return TriggerResponse(message="ETL run started", accepted_at=datetime.utcnow())


@router.get("/metrics")
async def metrics():
    """Prometheus text exposition of the default registry"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
