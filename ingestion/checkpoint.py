"""
Resume discovery for resumable sources
"""

from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import CheckpointStatus, RunStatus
from models.checkpoint import ETLCheckpoint
from models.etl_run import ETLRun
from schemas.etl import ResumePointer

logger = logging.getLogger(__name__)


class ResumeCursor:
    """
    Find where a new run should pick up a source.

    The candidate is the most recent run, other than the current one, whose
    status is not ``completed``. Its most recent completed checkpoint for the
    source gives the offset. A fresh start (offset 0) is signalled by None.
    """

    def __init__(self, db_session: AsyncSession, source: str):
        self.db = db_session
        self.source = source

    async def discover(self, current_run_id: str) -> Optional[ResumePointer]:
        previous = await self.db.scalar(
            select(ETLRun)
            .where(ETLRun.run_id != current_run_id)
            .where(ETLRun.status != RunStatus.COMPLETED)
            .order_by(ETLRun.start_time.desc(), ETLRun.id.desc())
            .limit(1)
        )
        if previous is None:
            return None

        checkpoint = await self.db.scalar(
            select(ETLCheckpoint)
            .where(ETLCheckpoint.run_id == previous.run_id)
            .where(ETLCheckpoint.source == self.source)
            .where(ETLCheckpoint.status == CheckpointStatus.COMPLETED)
            .order_by(ETLCheckpoint.batch_no.desc(), ETLCheckpoint.id.desc())
            .limit(1)
        )
        if checkpoint is None:
            logger.debug(f"Run {previous.run_id} left no checkpoint for {self.source}")
            return None

        logger.info(
            f"Resuming {self.source} from run {previous.run_id}, "
            f"batch {checkpoint.batch_no}, offset {checkpoint.offset}"
        )
        return ResumePointer(
            source=self.source,
            batch_no=checkpoint.batch_no,
            offset=checkpoint.offset
        )
