"""
Create all tables in the configured database
"""

import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.ext.asyncio import create_async_engine
from core.config import settings
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.etl_run import ETLRun  # noqa: F401
from models.checkpoint import ETLCheckpoint  # noqa: F401
from models.schema_version import SchemaVersion  # noqa: F401
from models.market_data import MarketData  # noqa: F401
from models.raw_data import RawMarketData  # noqa: F401
from models.quarantine import QuarantinedRecord  # noqa: F401

logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to database...")
    engine = create_async_engine(settings.DATABASE_URL, echo=False)

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
