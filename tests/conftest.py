"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
import httpx
from pathlib import Path
from typing import AsyncGenerator, Callable, Optional
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from models.base import Base
from ingestion.extractors.api_extractor import AssetsAPIExtractor, TickersAPIExtractor
from ingestion.extractors.csv_extractor import CSVExtractor
from ingestion.rate_limiter import RateLimiterRegistry
from ingestion.runner import ETLRunner
from ingestion.transformers.schema_reconciler import SchemaReconciler

# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

CANONICAL_HEADERS = ["ticker", "price_usd", "tx_volume", "time"]

SOURCE_A_URL = "https://source-a.test/v2/assets"
SOURCE_C_URL = "https://source-c.test/v1/tickers"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def rate_limiter():
    """Limiter generous enough that tests never throttle"""
    return RateLimiterRegistry(capacity=100, tokens_per_interval=100, interval=1.0, poll_interval=0)


@pytest.fixture
def asset_payload():
    """Source A response: envelope with list and envelope timestamp (ms)"""
    return {
        "data": [
            {"id": "bitcoin", "symbol": "BTC", "priceUsd": "68000.50", "volumeUsd24Hr": "1250000.0"},
            {"id": "ethereum", "symbol": "ETH", "priceUsd": "3500.25", "volumeUsd24Hr": "830000.0"},
        ],
        "timestamp": 1728561600000,
    }


@pytest.fixture
def ticker_payload():
    """Source C response with heterogeneous field names"""
    return [
        {"pair": "SOL-USD", "last": "150.10", "volume": "20000", "timestamp": 1728561600},
        {"pair": "ADA/USD", "last": "0.35", "volume": "1000000", "ts": "2024-10-10T12:00:00Z"},
    ]


CSV_ROWS = (
    "XRP,0.52,1000,2024-10-10T12:00:00Z\n"
    "DOGE,0.11,5000,1728561600\n"
)


@pytest.fixture
def csv_file(tmp_path) -> Path:
    """Source B file with canonical headers and two valid rows"""
    path = tmp_path / "market_data_source.csv"
    path.write_text("ticker,price_usd,tx_volume,time\n" + CSV_ROWS)
    return path


def _json_transport(payload, status_code: int = 200, calls: Optional[list] = None):
    """httpx transport answering every request with the same JSON body"""
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


def _sequence_transport(*responses: Callable[[], httpx.Response], calls: Optional[list] = None):
    """httpx transport replaying responses in order, repeating the last one"""
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        factory = queue.pop(0) if len(queue) > 1 else queue[0]
        return factory()

    return httpx.MockTransport(handler)


@pytest.fixture
def build_runner(session_factory, rate_limiter, asset_payload, ticker_payload, csv_file):
    """
    Build an ETLRunner over the three sources.

    Transports default to successful responses; retries are immediate.
    """
    def _build(
        asset_transport=None,
        ticker_transport=None,
        csv_path: Optional[Path] = None,
        batch_size: int = 500
    ) -> ETLRunner:
        retry_options = {"max_retries": 0, "retry_delay": 0}
        sources = [
            AssetsAPIExtractor(
                SOURCE_A_URL,
                rate_limiter,
                transport=asset_transport or _json_transport(asset_payload),
                **retry_options
            ),
            CSVExtractor(str(csv_path or csv_file)),
            TickersAPIExtractor(
                SOURCE_C_URL,
                rate_limiter,
                transport=ticker_transport or _json_transport(ticker_payload),
                **retry_options
            ),
        ]
        return ETLRunner(
            session_factory=session_factory,
            sources=sources,
            reconciler=SchemaReconciler(CANONICAL_HEADERS, threshold=0.8),
            rate_limiter=rate_limiter,
            batch_size=batch_size
        )

    return _build


@pytest.fixture
def json_transport():
    return _json_transport


@pytest.fixture
def sequence_transport():
    return _sequence_transport
