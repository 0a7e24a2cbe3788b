"""
API endpoint tests
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from datetime import datetime
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from api.main import app
from api.dependencies import get_db, get_runner
from core.exceptions import RunInProgressError
from models.base import RunStatus
from models.etl_run import ETLRun


@pytest.fixture
def mock_session():
    """Database session double"""
    session = AsyncMock()
    session.scalar.return_value = None
    return session


@pytest.fixture
def mock_runner():
    runner = MagicMock()
    runner.is_running = False
    runner.run = AsyncMock(return_value={
        "run_id": "run_test",
        "status": "completed",
        "stats": {},
        "errors": [],
    })
    return runner


@pytest.fixture
def client(mock_session, mock_runner):
    """Create test client with database and runner overrides"""

    async def override_get_db():
        yield mock_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_runner] = lambda: mock_runner

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_refresh_accepts_and_runs_in_background(client, mock_runner):
    response = client.post("/refresh")

    assert response.status_code == 202
    data = response.json()
    assert data["message"] == "ETL run started"
    assert "accepted_at" in data

    mock_runner.claim.assert_called_once_with(trigger="api")
    mock_runner.run.assert_awaited_once_with(trigger="api", claimed=True)


def test_refresh_conflict_when_running(client, mock_runner):
    mock_runner.claim.side_effect = RunInProgressError("An ETL run is already in progress")

    response = client.post("/refresh")

    assert response.status_code == 409
    assert response.json()["detail"] == "An ETL run is already in progress"
    mock_runner.run.assert_not_called()


def test_health_endpoint_healthy(client, mock_session):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["latest_run"] is None
    assert data["run_in_progress"] is False


def test_health_endpoint_degraded_after_failed_run(client, mock_session):
    mock_session.scalar.return_value = ETLRun(
        run_id="run_failed",
        status=RunStatus.FAILED,
        start_time=datetime(2024, 10, 10, 12, 0, 0),
        end_time=datetime(2024, 10, 10, 12, 0, 5),
    )

    response = client.get("/health")

    data = response.json()
    assert data["status"] == "degraded"
    assert data["latest_run"]["run_id"] == "run_failed"
    assert data["latest_run"]["status"] == "failed"


def test_health_endpoint_database_down(client, mock_session):
    mock_session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "unhealthy"
    assert data["database_connected"] is False


def test_metrics_endpoint(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "etl_rows_processed_total" in response.text
    assert "etl_run_latency_seconds" in response.text


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["refresh"] == "/refresh"
