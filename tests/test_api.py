"""
API Tests
---------
Tests for the drift detection API routes.
"""

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from gpowatch.api.routes.drift import get_snapshot_store
from gpowatch.core.database import get_db
from gpowatch.core.drift.types import ChangeSet, RunResult
from gpowatch.core.exceptions import DirectoryQueryFailure
from gpowatch.main import app
from gpowatch.services.history import record_failed_run, record_run

from conftest import RUN_TIME, WATCHED_ROOT, make_record, make_snapshot


@pytest.fixture
def client(override_get_db, snapshot_store):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_snapshot_store] = lambda: snapshot_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def recorded_run(session_factory) -> RunResult:
    result = RunResult(
        watched_root=WATCHED_ROOT,
        started_at=RUN_TIME,
        finished_at=RUN_TIME,
        policy_count=2,
        changes=ChangeSet(added=[make_record("A")], changed=[make_record("B", 2)]),
        snapshot_saved=True,
    )

    async def seed():
        async with session_factory() as session:
            await record_failed_run(session, WATCHED_ROOT, RUN_TIME.replace(hour=7), "gateway down", "schedule")
        async with session_factory() as session:
            await record_run(session, result, triggered_by="api")

    asyncio.run(seed())
    return result


def test_status_without_runs(client):
    response = client.get("/api/drift/status")

    assert response.status_code == 200
    data = response.json()
    assert data["total_runs"] == 0
    assert data["last_run"] is None
    assert data["snapshot_policies"] is None


def test_status_reports_latest_run(client, recorded_run, snapshot_store):
    snapshot_store.save(make_snapshot(make_record("A"), make_record("B")))

    data = client.get("/api/drift/status").json()

    assert data["total_runs"] == 2
    assert data["failed_runs"] == 1
    assert data["last_run_status"] == "succeeded"
    assert data["snapshot_policies"] == 2


def test_list_runs(client, recorded_run):
    response = client.get("/api/drift/runs")

    assert response.status_code == 200
    runs = response.json()
    assert len(runs) == 2
    assert runs[0]["id"] == str(recorded_run.id)
    assert runs[1]["status"] == "failed"


def test_get_run_details(client, recorded_run):
    response = client.get(f"/api/drift/runs/{recorded_run.id}")

    assert response.status_code == 200
    data = response.json()
    assert data["run"]["added_count"] == 1
    assert sorted(change["policy_id"] for change in data["changes"]) == ["A", "B"]


def test_get_unknown_run(client):
    response = client.get(f"/api/drift/runs/{uuid4()}")

    assert response.status_code == 404


def test_snapshot_not_stored_yet(client):
    assert client.get("/api/drift/snapshot").status_code == 404


def test_snapshot(client, snapshot_store):
    snapshot_store.save(make_snapshot(make_record("A", organizational_path="CORP.CONTOSO.COM\\Corp")))

    response = client.get("/api/drift/snapshot")

    assert response.status_code == 200
    record = response.json()["records"][0]
    assert record["identifier"] == "A"
    assert record["organizational_path"] == "CORP.CONTOSO.COM\\Corp"


def test_unreadable_snapshot_conflicts(client, snapshot_store):
    snapshot_store.path.parent.mkdir(parents=True)
    snapshot_store.path.write_text("{", encoding="utf-8")

    assert client.get("/api/drift/snapshot").status_code == 409


def test_trigger_scan(client):
    with patch("gpowatch.api.routes.drift.run_drift_detection", new_callable=AsyncMock) as mock_run:
        response = client.post("/api/drift/scan")

    assert response.status_code == 202
    assert response.json()["watched_root"]
    mock_run.assert_awaited_once_with(triggered_by="api")


def test_failed_background_scan_does_not_break_request(client):
    failing = AsyncMock(side_effect=DirectoryQueryFailure("gateway down"))
    with patch("gpowatch.api.routes.drift.run_drift_detection", failing):
        response = client.post("/api/drift/scan")

    assert response.status_code == 202
    failing.assert_awaited_once()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["components"]["database"]["status"] == "ok"
    assert "snapshot_store" in data["components"]


def test_health_reports_empty_snapshot(client, snapshot_store):
    snapshot_store.save(make_snapshot())

    component = client.get("/health").json()["components"]["snapshot_store"]

    assert component["status"] == "ok"
    assert component["details"] == "0 policies"
    assert component["captured_at"] == RUN_TIME.isoformat()
