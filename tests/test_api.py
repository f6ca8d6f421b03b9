import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api import create_app
from api.context import AppContext
from collectors.crash_artifacts import CrashArtifactScanner
from datamodels.events import EventSeverity, SupportedOs
from infra.config import AppConfig
from fakes import FakeCollector, FakeRunner, journal_record, make_event

UTC = timezone.utc


@pytest.fixture
def collector():
    return FakeCollector()


@pytest.fixture
def ctx(tmp_path, collector):
    scanner = CrashArtifactScanner(host_os=SupportedOs.LINUX, runner=FakeRunner(), roots={}, use_coredumpctl=False)
    return AppContext.build(AppConfig(data_dir=tmp_path, timezone="UTC"), host_os=SupportedOs.LINUX,
                            collector=collector, runner=FakeRunner(), scanner=scanner)


@pytest.fixture
def client(ctx):
    with TestClient(create_app(context=ctx)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["os"] == "linux"
    assert body["cachedEvents"] == 0


def test_settings_round_trip_and_rejection(client):
    assert client.get("/settings/ingest-window").json() == {"days": 7}
    assert client.put("/settings/ingest-window", json={"days": 14}).json() == {"days": 14}

    response = client.put("/settings/ingest-window", json={"days": 400})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"]
    assert client.get("/settings/ingest-window").json() == {"days": 14}

    profile = client.put("/settings/ingest-profile",
                         json={"maxEventsPerSync": 5, "windowsChannels": ["system"]}).json()
    assert profile["maxEventsPerSync"] == 100
    assert profile["windowsChannels"] == ["System"]


def test_sync_range_then_query_range(client, collector):
    collector.records.extend(
        journal_record(i, datetime(2026, 2, 21, 10, tzinfo=UTC) + timedelta(minutes=i)) for i in range(5)
    )
    response = client.post("/events/sync-range", json={"from": "2026-02-27", "to": "2026-02-20"})
    assert response.status_code == 200
    assert response.json() == {"collected": 5, "warnings": []}

    body = client.get("/events/range", params={"from": "2026-02-20", "to": "2026-02-27"}).json()
    assert len(body["events"]) == 5
    assert body["truncated"] == 0

    coverage = client.get("/events/coverage", params={"from": "2026-03-01", "to": "2026-03-02"}).json()
    assert coverage["status"] == "fully_outside"
    assert coverage["coverage"]["count"] == 5
    assert "fully outside" in coverage["warning"]


def test_events_filtering(client, ctx):
    t = datetime(2026, 2, 24, 12, tzinfo=UTC)
    ctx.store.upsert([
        make_event(t, key=1, message="disk failure on sda", provider="kernel"),
        make_event(t, key=2, message="user logged in", provider="sshd"),
    ])
    body = client.get("/events", params={"text": "disk"}).json()
    assert [e["message"] for e in body["events"]] == ["disk failure on sda"]
    assert body["imported"] == []
    assert body["coverageWarning"] is None
    assert len(client.get("/events", params={"source": "sshd"}).json()["events"]) == 1


def test_invalid_range_is_a_bad_request(client):
    response = client.get("/events/range", params={"from": "2026-02-31", "to": "2026-03-01"})
    assert response.status_code == 400


def test_refresh_hard_error_is_bad_gateway(ctx, collector, client):
    collector.errors.append("journalctl exited with status 1.")
    response = client.post("/events/refresh")
    assert response.status_code == 502
    assert response.json()["errors"] == ["journalctl exited with status 1."]
    assert ctx.store.count() == 0


def test_sample_crash_correlation(client, ctx, collector):
    crash = client.post("/crashes/sample", json={"os": "linux"}).json()
    assert crash["source"] == "kdump"
    assert client.post("/crashes/sample", json={}).json()["id"] == crash["id"]

    at = datetime.fromisoformat(crash["timestamp"])
    ctx.store.upsert([make_event(at - timedelta(minutes=5), key="before"),
                      make_event(at + timedelta(minutes=5), key="after")])

    related = client.get(f"/crashes/{crash['id']}/related", params={"windowMinutes": 10}).json()
    assert len(related["events"]) == 2

    focus = client.get(f"/crashes/{crash['id']}/pre-crash", params={"preWindowMinutes": 15}).json()
    assert focus["mode"] == "strict"
    assert len(focus["events"]) == 1

    collector.records.append(journal_record(9, at - timedelta(minutes=2)))
    synced = client.get(f"/crashes/{crash['id']}/pre-crash", params={"sync": "true"}).json()
    assert len(synced["events"]) == 2
    assert synced["warnings"] == []

    crashes = client.get("/crashes").json()["crashes"]
    assert [c["id"] for c in crashes] == [crash["id"]]


def test_unknown_crash_is_not_found(client):
    assert client.get("/crashes/missing/related").status_code == 404
    assert client.get("/crashes/missing/pre-crash").status_code == 404


def test_import_and_clear_session_events(client):
    rows = [{"timestamp": "2026-02-24T10:00:00Z", "message": "from json", "severity": "error"}]
    response = client.post("/events/import", json={"filename": "export.json", "content": json.dumps(rows)})
    assert response.json() == {"imported": 1, "total": 1}

    csv_content = "Timestamp,Message,Severity\n2026-02-24T11:00:00Z,from csv,warning\n"
    response = client.post("/events/import", json={"filename": "export.csv", "content": csv_content})
    assert response.json() == {"imported": 1, "total": 2}

    imported = client.get("/events").json()["imported"]
    assert sorted(e["message"] for e in imported) == ["from csv", "from json"]
    assert all(e["imported"] for e in imported)

    assert client.post("/events/import", json={"filename": "export.xml", "content": "<x/>"}).status_code == 400
    assert client.delete("/events/import").json() == {"cleared": 2}
    assert client.get("/events").json()["imported"] == []


def test_import_host_crashes_with_no_artifacts(client):
    assert client.post("/crashes/import-host", json={"limit": 10}).json() == {"added": 0}


def test_event_filters_reject_unknown_enum_values(client, ctx):
    t = datetime(2026, 2, 24, 12, tzinfo=UTC)
    ctx.store.upsert([make_event(t, key=1, message="boom", severity=EventSeverity.ERROR)])
    assert len(client.get("/events", params={"severity": "Error"}).json()["events"]) == 1

    response = client.get("/events", params={"severity": "eror"})
    assert response.status_code == 400
    assert "severity" in response.json()["message"]
    assert client.get("/events", params={"category": "kernel"}).status_code == 400
