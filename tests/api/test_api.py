"""
API endpoint tests
"""

import time

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from core.exceptions import ETLException
from ingestion.engine import EtlEngine
from ingestion.repository import InMemoryJobRepository
from tests.stubs import StubSink, StubSource, http_error


@pytest.fixture
def source():
    return StubSource([{"Order ID": 1, "Total": "9.99"}])


@pytest.fixture
def sink():
    return StubSink()


@pytest.fixture
def engine(test_settings, message_store, wire_tap, dead_letter, make_runner, source, sink, etl_job, scheduled_job):
    return EtlEngine(
        test_settings,
        InMemoryJobRepository([etl_job, scheduled_job]),
        message_store=message_store,
        wire_tap=wire_tap,
        dead_letter=dead_letter,
        runner=make_runner(source, sink),
    )


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client


def _wait_for_status(client, job_id, expected, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/jobs/{job_id}/status").json()
        if body["status"] == expected:
            return body
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} never reached {expected}")


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["environment"] == "test"
    assert data["scheduler_running"] is True
    assert data["scheduled_jobs"] == 1
    assert data["active_executions"] == 0


def test_root_lists_endpoints(client):
    data = client.get("/").json()

    assert data["endpoints"]["jobs"] == "/jobs"


def test_request_id_is_echoed(client):
    response = client.get("/jobs", headers={"X-Request-ID": "req_test123"})

    assert response.headers["X-Request-ID"] == "req_test123"
    assert "X-API-Latency-ms" in response.headers
    assert response.json()["request_id"] == "req_test123"


def test_list_jobs(client):
    response = client.get("/jobs")

    assert response.status_code == 200
    jobs = {job["id"]: job for job in response.json()["data"]}
    assert set(jobs) == {"orders-export", "nightly-orders"}
    assert jobs["nightly-orders"]["scheduled"] is True
    assert jobs["orders-export"]["next_fire_time"] == "N/A"
    assert "password" not in jobs["orders-export"]


def test_get_unknown_job(client):
    assert client.get("/jobs/ghost").status_code == 404


def test_register_job(client, etl_job):
    payload = etl_job.model_dump(mode="json")
    payload.update(id="weekly", name="Weekly", schedule={"enabled": True, "cron_expression": "0 6 * * 1"})

    response = client.post("/jobs", json=payload)

    assert response.status_code == 201
    assert response.json() == {"job_id": "weekly", "scheduled": True}
    assert client.get("/schedules/weekly/next-fire-time").json()["next_fire_time"] != "N/A"


def test_register_invalid_job(client):
    response = client.post("/jobs", json={"id": "broken", "name": "Broken"})

    assert response.status_code == 422
    body = response.json()
    assert body["error_type"] == "ConfigurationError"
    assert "source_config" in body["context"]["invalid_fields"]


def test_delete_job(client):
    assert client.delete("/jobs/nightly-orders").status_code == 204
    assert client.get("/jobs/nightly-orders").status_code == 404
    assert client.delete("/jobs/nightly-orders").status_code == 404


def test_run_job_and_poll_status(client, sink):
    response = client.post("/jobs/orders-export/run")

    assert response.status_code == 202
    run_id = response.json()["run_id"]

    body = _wait_for_status(client, "orders-export", "success")
    assert body["execution"]["run_id"] == run_id
    assert body["execution"]["records_processed"] == 1
    assert body["execution"]["metrics"]["records_loaded"] == 1
    assert sink.deliver_calls == 1


def test_run_unknown_job(client):
    assert client.post("/jobs/ghost/run").status_code == 404


def test_run_twice_conflicts(client, source):
    source.delay = 3600

    assert client.post("/jobs/orders-export/run").status_code == 202
    response = client.post("/jobs/orders-export/run")

    assert response.status_code == 409
    assert response.json()["error_type"] == "JobAlreadyRunningError"

    stop = client.post("/jobs/orders-export/stop")
    assert stop.json() == {"job_id": "orders-export", "stopped": True}
    assert client.get("/jobs/orders-export/status").json()["status"] == "cancelled"


def test_status_of_never_run_job(client):
    body = client.get("/jobs/orders-export/status").json()

    assert body["status"] == "unknown"
    assert body["execution"] is None


def test_stop_idle_job(client):
    assert client.post("/jobs/orders-export/stop").json()["stopped"] is False


def test_pause_execution_not_supported(client):
    assert client.post("/jobs/orders-export/pause").status_code == 501
    assert client.post("/jobs/orders-export/resume").status_code == 501


def test_unexpected_engine_error_is_500(client, engine, monkeypatch):
    async def failing_submit(job):
        raise ETLException("Control bus unavailable", context={"job_id": job.id})

    monkeypatch.setattr(engine, "submit_job", failing_submit)

    response = client.post("/jobs/orders-export/run")

    assert response.status_code == 500
    body = response.json()
    assert body["error_type"] == "ETLException"
    assert body["context"] == {"job_id": "orders-export"}


def test_schedules(client):
    listed = client.get("/schedules").json()["data"]
    assert [s["job_id"] for s in listed] == ["nightly-orders"]

    paused = client.post("/schedules/nightly-orders/pause")
    assert paused.status_code == 200
    assert paused.json()["next_fire_time"] == "N/A"

    resumed = client.post("/schedules/nightly-orders/resume")
    assert resumed.json()["next_fire_time"] != "N/A"

    assert client.delete("/schedules/nightly-orders").status_code == 204
    assert client.post("/schedules/nightly-orders/pause").status_code == 404
    assert client.get("/schedules/nightly-orders/next-fire-time").json()["next_fire_time"] == "N/A"


def test_messages_and_dead_letters(client, sink):
    sink.script = [http_error(400, "rejected")]

    client.post("/jobs/orders-export/run")
    body = _wait_for_status(client, "orders-export", "failed")
    assert body["execution"]["error_message"] == "HTTP 400: rejected"

    dead = client.get("/dead-letters").json()["data"]
    assert dead["total"] == 1
    assert dead["failed_messages"][0]["reason"] == "HTTP 400: rejected"

    outputs = client.get("/messages", params={"context": "pipeline-output"}).json()["data"]
    assert outputs["total"] == 1
    message_id = outputs["messages"][0]["message_id"]

    history = client.get(f"/messages/{message_id}/history").json()
    assert history[0]["context"] == "orchestrator-extract"
    assert client.get(f"/messages/{message_id}").json()["context"] == "orchestrator-transform"


def test_messages_time_filter(client):
    bad = client.get("/messages", params={"start": "2024-02-01T00:00:00", "end": "2024-01-01T00:00:00"})
    assert bad.status_code == 400

    empty = client.get("/messages", params={"start": "2000-01-01T00:00:00", "end": "2000-01-02T00:00:00"})
    assert empty.json()["data"]["total"] == 0


def test_unknown_message(client):
    assert client.get("/messages/nope").status_code == 404
    assert client.get("/messages/nope/history").status_code == 404


def test_api_key_required_when_configured(engine):
    engine.settings.API_KEY = "s3cret"

    with TestClient(create_app(engine)) as client:
        assert client.get("/jobs").status_code == 401
        assert client.get("/jobs", headers={"X-API-Key": "wrong"}).status_code == 401
        assert client.get("/jobs", headers={"X-API-Key": "s3cret"}).status_code == 200
        assert client.get("/health").status_code == 200
