"""
Shared FastAPI dependencies
"""

from typing import AsyncIterator, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from ingestion.runner import ETLRunner

_runner: Optional[ETLRunner] = None


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a database session for the request"""
    async with async_session_maker() as session:
        yield session


def get_runner() -> ETLRunner:
    """Process-wide runner; its lock makes runs single-flight across requests"""
    global _runner
    if _runner is None:
        _runner = ETLRunner.from_settings(async_session_maker)
    return _runner
