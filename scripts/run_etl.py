"""
Run the ETL pipeline once for all configured sources
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import async_session_maker, engine
from core.exceptions import RunInProgressError
from core.logging import setup_logging
from ingestion.runner import ETLRunner

logger = logging.getLogger(__name__)


async def run_etl() -> int:
    """Run ETL once; exit code 1 when the run failed"""
    runner = ETLRunner.from_settings(async_session_maker)

    try:
        result = await runner.run(trigger="script")
    except RunInProgressError as e:
        logger.error(e.message)
        return 1
    finally:
        await engine.dispose()

    stats = result["stats"]
    logger.info(
        f"Run {result['run_id']} {result['status']}: "
        f"Extracted={stats['extracted']}, Loaded={stats['loaded']}, "
        f"Duplicates={stats['duplicates']}, Quarantined={stats['quarantined']}"
    )
    for error in result["errors"]:
        logger.warning(f"{error['message']}")

    return 1 if result["status"] == "failed" else 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_etl()))
