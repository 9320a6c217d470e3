# ================================
# FILE: tests/test_api.py
# ================================

from healthcheck_service.core.config import Settings
from healthcheck_service.main import create_app
from healthcheck_service.status import ServiceState


def test_readiness_follows_state(client, app):
    response = client.get("/health/ready")
    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"

    app.state.readiness.set(ServiceState.READY)
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


def test_liveness(client):
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


def test_example_endpoints(client):
    assert client.get("/api/example").json() == {"message": "API example response"}
    response = client.get("/api/fail")
    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error"}


def test_request_counters_end_to_end(client, app):
    for _ in range(3):
        assert client.get("/api/example").status_code == 200
    assert client.get("/api/fail").status_code == 500

    registry = app.state.registry
    assert registry.get_value(
        "api_requests_total", {"method": "GET", "path": "/api/example", "status": "200"}
    ) == 3
    assert registry.get_value(
        "api_requests_total", {"method": "GET", "path": "/api/fail", "status": "500"}
    ) == 1
    assert registry.get_value("api_errors_total", {"type": "server_error"}) == 1

    text = client.get("/metrics").text
    assert "# TYPE api_requests_total counter" in text
    assert 'api_requests_total{method="GET",path="/api/example",status="200"} 3.0' in text
    assert 'api_errors_total{type="server_error"} 1.0' in text


def test_metrics_text_format(client):
    client.get("/api/example")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")

    text = response.text
    assert "# TYPE api_request_duration_seconds histogram" in text
    assert 'api_request_duration_seconds_bucket{le="+Inf",method="GET",path="/api/example"} 1.0' in text
    assert "# TYPE system_cpu_usage gauge" in text
    assert "service_ready 0.0" in text


def test_metrics_json(client):
    client.get("/api/example")
    body = client.get("/metrics/json").json()
    names = {m["name"] for m in body["metrics"]}
    assert {"api_requests_total", "api_request_duration_seconds", "system_cpu_usage"} <= names

    histogram = next(m for m in body["metrics"] if m["name"] == "api_request_duration_seconds")
    assert histogram["kind"] == "histogram"
    assert histogram["buckets"][-1] == {"le": "+Inf", "count": 1}
    assert histogram["count"] == 1


def test_metrics_render_failure_returns_probe_failure(client, app, monkeypatch):
    def broken():
        raise RuntimeError("encoder unavailable")

    monkeypatch.setattr(app.state.exporter, "render", broken)
    response = client.get("/metrics")
    assert response.status_code == 503
    assert response.json()["error"]["code"] == "PROBE_FAILURE"


def test_root(client, test_settings):
    body = client.get("/").json()
    assert body["service_name"] == test_settings.service_name
    assert body["state"] == "starting"
    assert body["endpoints"]["readiness"] == "/health/ready"


def test_lifespan_marks_ready_and_samples(running_client, app, sample_source):
    assert running_client.get("/health/ready").status_code == 200
    assert sample_source.calls >= 1
    assert app.state.sampler.has_sample


def test_lifespan_shutdown_is_terminal(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as c:
        assert c.get("/health/ready").status_code == 200

    assert app.state.readiness.get() is ServiceState.SHUTTING_DOWN
    assert not app.state.background_tasks.running


def test_not_ready_on_startup_when_disabled(sample_source):
    from fastapi.testclient import TestClient

    app = create_app(
        Settings(ready_on_startup=False, sample_interval=0.05, heartbeat_interval=0.05, drain_timeout=0.5),
        sample_source=sample_source,
    )
    with TestClient(app) as c:
        response = c.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["code"] == "STARTUP_INCOMPLETE"


def test_apps_do_not_share_state(test_settings, sample_source):
    first = create_app(test_settings, sample_source=sample_source)
    second = create_app(test_settings, sample_source=sample_source)
    first.state.readiness.set(ServiceState.READY)
    assert second.state.readiness.get() is ServiceState.STARTING
    assert first.state.registry is not second.state.registry
