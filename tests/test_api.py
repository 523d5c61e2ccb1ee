"""Tests for the worker API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from scout_engine.config import SchedulerConfig, Settings
from scout_engine.worker.trigger import ExecutionTrigger


@pytest.fixture
def mock_engine():
    engine = MagicMock()
    engine.run = AsyncMock(return_value=None)
    return engine


@pytest.fixture
def api_client(memory_store, mock_engine):
    settings = Settings(scheduler=SchedulerConfig(worker_token="secret"))
    trigger = ExecutionTrigger(store=memory_store, engine=mock_engine, worker_id="worker-api")
    return TestClient(create_app(settings=settings, trigger=trigger))


@pytest.fixture
def auth():
    return {"Authorization": "Bearer secret"}


@pytest.fixture
def running_execution(memory_store, sample_scout, now):
    memory_store.save_scout(sample_scout)
    return memory_store.claim_scout(sample_scout.id, now=now, expected_last_run_at=None)


class TestHealth:
    """Tests for health endpoints."""

    def test_health(self, api_client):
        response = api_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "scout-engine"}


class TestRunExecution:
    """Tests for POST /api/executions/{id}/run."""

    def test_missing_token_is_rejected(self, api_client, running_execution, mock_engine):
        response = api_client.post(f"/api/executions/{running_execution.id}/run")

        assert response.status_code == 401
        mock_engine.run.assert_not_awaited()

    def test_wrong_token_is_rejected(self, api_client, running_execution):
        response = api_client.post(
            f"/api/executions/{running_execution.id}/run",
            headers={"Authorization": "Bearer nope"},
        )

        assert response.status_code == 401

    def test_accepts_and_runs_in_background(self, api_client, running_execution, mock_engine, auth, memory_store):
        response = api_client.post(f"/api/executions/{running_execution.id}/run", headers=auth)

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "accepted"
        assert body["scout_id"] == running_execution.scout_id
        mock_engine.run.assert_awaited_once()
        assert memory_store.get_execution(running_execution.id).worker_id == "worker-api"

    def test_duplicate_delivery_is_a_noop(self, api_client, running_execution, mock_engine, auth):
        api_client.post(f"/api/executions/{running_execution.id}/run", headers=auth)

        response = api_client.post(f"/api/executions/{running_execution.id}/run", headers=auth)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert mock_engine.run.await_count == 1

    def test_unknown_execution_is_404(self, api_client, auth):
        response = api_client.post("/api/executions/missing/run", headers=auth)

        assert response.status_code == 404
