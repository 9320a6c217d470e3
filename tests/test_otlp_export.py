# ================================
# FILE: tests/test_otlp_export.py
# ================================

import pytest
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from healthcheck_service.core.config import Settings
from healthcheck_service.core.otlp_export import OtlpMetricsExporter, build_resource
from healthcheck_service.status import ServiceState


@pytest.fixture
def reader():
    return InMemoryMetricReader()


@pytest.fixture
def exporter(health_service, test_settings, reader):
    exporter = OtlpMetricsExporter(health_service.metrics_snapshot, test_settings, reader=reader)
    yield exporter
    exporter.shutdown()


def _collect(reader):
    data = reader.get_metrics_data()
    metrics = {}
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                metrics[metric.name] = metric
    return data, metrics


def _points(metric):
    return {tuple(sorted(p.attributes.items())): p.value for p in metric.data.data_points}


def test_resource_identifies_service():
    settings = Settings(service_name="orders-api", version="1.2.3", environment="staging", host="10.0.0.5")
    attributes = build_resource(settings).attributes
    assert attributes["service.name"] == "orders-api"
    assert attributes["service.version"] == "1.2.3"
    assert attributes["deployment.environment.name"] == "staging"
    assert attributes["network.local.address"] == "10.0.0.5"


def test_counters_and_gauges_follow_the_snapshot(exporter, reader, registry, readiness, sampler, test_settings):
    sampler.refresh()
    readiness.set(ServiceState.READY)
    registry.incr_counter("api_requests_total", {"method": "GET", "path": "/api/example", "status": "200"}, 3)

    data, metrics = _collect(reader)

    requests = _points(metrics["api_requests_total"])
    assert requests[(("method", "GET"), ("path", "/api/example"), ("status", "200"))] == 3
    assert _points(metrics["service_ready"])[()] == 1
    assert _points(metrics["system_cpu_usage"])[()] == 0.25
    assert data.resource_metrics[0].resource.attributes["service.name"] == test_settings.service_name


def test_histograms_export_count_and_sum(exporter, reader, registry):
    labels = {"method": "GET", "path": "/api/example"}
    registry.observe_histogram("api_request_duration_seconds", labels, 0.2)
    registry.observe_histogram("api_request_duration_seconds", labels, 0.4)

    _, metrics = _collect(reader)

    key = (("method", "GET"), ("path", "/api/example"))
    assert _points(metrics["api_request_duration_seconds_count"])[key] == 2
    assert _points(metrics["api_request_duration_seconds_sum"])[key] == pytest.approx(0.6)


def test_new_metric_names_are_picked_up_by_sync(exporter, reader, registry):
    registry.set_gauge("queue_depth", {"queue": "default"}, 7)
    assert "queue_depth" not in exporter.instrument_names

    assert exporter.sync_instruments() == 1
    assert exporter.sync_instruments() == 0

    _, metrics = _collect(reader)
    assert _points(metrics["queue_depth"])[(("queue", "default"),)] == 7


def test_disabled_without_endpoint(app):
    assert app.state.otlp_exporter is None
