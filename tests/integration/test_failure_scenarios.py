"""
Tests for failure scenarios and error handling
"""

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import select
from core.exceptions import UpsertError
from ingestion.loaders.market_loader import MarketDataLoader
from ingestion.transformers.normalizer import DataNormalizer
from models.base import RunStatus
from models.checkpoint import ETLCheckpoint
from models.etl_run import ETLRun
from models.market_data import MarketData


async def fetch_run(session_factory, run_id):
    async with session_factory() as session:
        return await session.scalar(select(ETLRun).where(ETLRun.run_id == run_id))


async def fetch_all(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(model))).scalars().all()


@pytest.mark.asyncio
async def test_persistence_failure_fails_run(build_runner, session_factory):
    """
    Test: every upsert is rejected, the run ends failed with its
    extraction stats and an error record
    """
    runner = build_runner()

    with patch.object(
        MarketDataLoader,
        "load_batch",
        AsyncMock(side_effect=UpsertError("Failed to upsert batch", context={"batch_no": 1}))
    ):
        result = await runner.run()

    assert result["status"] == "failed"
    assert result["stats"]["extracted"] == 6
    assert result["stats"]["loaded"] == 0
    assert result["stats"]["errors"] == 1
    assert result["errors"][0]["message"].startswith("Load phase failed")
    assert result["errors"][0]["detail"]["kind"] == "load"

    run = await fetch_run(session_factory, result["run_id"])
    assert run.status == RunStatus.FAILED
    assert run.end_time is not None
    assert run.stats["extracted"] == 6
    assert run.errors == result["errors"]

    assert await fetch_all(session_factory, MarketData) == []


@pytest.mark.asyncio
async def test_source_down_without_cache_fails_run(build_runner, session_factory, json_transport):
    """
    Test: a source with no snapshot to fall back on fails the run, and
    nothing from the healthy sources is loaded
    """
    runner = build_runner(ticker_transport=json_transport({"error": "gone"}, status_code=404))

    result = await runner.run()

    assert result["status"] == "failed"
    assert len(result["errors"]) == 1
    assert result["errors"][0]["message"] == "Extraction failed for api_c"
    assert result["errors"][0]["detail"]["error_type"] == "ResourceNotFoundError"
    assert result["stats"]["extracted"] == 4

    assert await fetch_all(session_factory, MarketData) == []
    assert await fetch_all(session_factory, ETLCheckpoint) == []


@pytest.mark.asyncio
async def test_each_failed_source_is_recorded(build_runner, json_transport, tmp_path):
    runner = build_runner(
        asset_transport=json_transport({}, status_code=401),
        csv_path=tmp_path / "missing.csv"
    )

    result = await runner.run()

    assert result["status"] == "failed"
    assert [e["message"] for e in result["errors"]] == [
        "Extraction failed for api_a",
        "Extraction failed for csv",
    ]
    assert result["errors"][1]["detail"]["error_type"] == "CSVExtractionError"


@pytest.mark.asyncio
async def test_unexpected_error_is_caught_and_recorded(build_runner, session_factory):
    runner = build_runner()

    with patch.object(DataNormalizer, "normalize_many", side_effect=RuntimeError("boom")):
        result = await runner.run()

    assert result["status"] == "failed"
    assert result["errors"][0]["message"] == "Unexpected error in ETL pipeline"
    assert result["errors"][0]["detail"] == {"error_type": "RuntimeError", "message": "boom"}

    run = await fetch_run(session_factory, result["run_id"])
    assert run.status == RunStatus.FAILED
    assert run.end_time is not None
