import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from trafficjam import api
from trafficjam.errors import ModelError
from trafficjam.models import AnalysisOutcome

SNAPSHOT = {
    "running": True,
    "phase": "steady",
    "started_at": None,
    "last_run_at": None,
    "cycles_completed": 2,
    "last_cycle_failures": 0,
}


@pytest.fixture
def scheduler(monkeypatch):
    scheduler = MagicMock()
    scheduler.snapshot.return_value = SNAPSHOT
    monkeypatch.setattr(api, "_get_scheduler", lambda: scheduler)
    return scheduler


@pytest.fixture
def analyzer(monkeypatch):
    analyzer = MagicMock()
    monkeypatch.setattr(api, "_get_analyzer", lambda: analyzer)
    return analyzer


@pytest.fixture
def client():
    return TestClient(api.app)


def test_health_reports_worker(client, scheduler):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "worker": SNAPSHOT}


def test_worker_start_and_stop(client, scheduler):
    scheduler.start.return_value = False
    scheduler.stop.return_value = True

    started = client.post("/api/worker/start").json()
    stopped = client.post("/api/worker/stop").json()

    assert started["started"] is False
    assert stopped["stopped"] is True
    scheduler.stop.assert_called_once_with()


def test_analyze_returns_outcome(client, analyzer, sample_reading):
    analyzer.analyze.return_value = AnalysisOutcome(source_url="http://cams/CV-1.jpg", reading=sample_reading)

    response = client.get("/api/analyze/CV-1")

    assert response.status_code == 200
    body = response.json()
    assert body["source_url"] == "http://cams/CV-1.jpg"
    assert body["reading"] == {"title": sample_reading.title, "date": "12/06/2025 18:47", "traffic": 42}
    analyzer.analyze.assert_called_once_with("CV-1")


def test_analyze_model_failure_is_bad_gateway(client, analyzer):
    analyzer.analyze.side_effect = ModelError("VLM request failed")
    response = client.get("/api/analyze/CV-1")
    assert response.status_code == 502
    assert response.json()["detail"] == "VLM request failed"
