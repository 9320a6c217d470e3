# ================================
# FILE: tests/test_health_service.py
# ================================

import pytest

from healthcheck_service.core.config import Settings
from healthcheck_service.core.health_service import HealthService
from healthcheck_service.status import ServiceState


def _by_name(samples):
    return {(s.name, s.labels): s for s in samples}


class TestLiveness:
    """Liveness probe"""

    @pytest.mark.parametrize("state", ["starting", "ready", "degraded", "shutting_down"])
    def test_alive_in_every_state(self, health_service, readiness, state):
        readiness.set(state)
        result = health_service.liveness()
        assert result.status_code == 200
        assert result.body == {"status": "alive"}

    def test_fails_when_drain_exceeds_timeout(self, health_service, readiness, clock):
        readiness.set(ServiceState.SHUTTING_DOWN)
        clock.advance(0.5)
        assert health_service.liveness().status_code == 200

        clock.advance(1.0)
        result = health_service.liveness()
        assert result.status_code == 503
        assert result.body["status"] == "not_alive"

    def test_startup_grace_period(self, readiness, registry, sampler, clock):
        settings = Settings(startup_grace_period=2.0)
        service = HealthService(readiness, registry, sampler, settings, clock=clock)

        clock.advance(1)
        assert service.liveness().healthy
        clock.advance(2)
        result = service.liveness()
        assert result.status_code == 503
        assert "Startup" in result.body["reason"]

    def test_internal_fault_is_reported_as_probe_failure(self, health_service, monkeypatch):
        def explode():
            raise RuntimeError("state lost")

        monkeypatch.setattr(health_service.state, "get", explode)
        result = health_service.liveness()
        assert result.status_code == 503
        assert result.body["status"] == "error"
        assert result.body["error"]["code"] == "PROBE_FAILURE"
        assert "state lost" in result.body["error"]["message"]


class TestReadiness:
    """Readiness probe"""

    def test_starting_reports_startup_incomplete(self, health_service):
        result = health_service.readiness()
        assert result.status_code == 503
        assert result.body["status"] == "not_ready"
        assert result.body["state"] == "starting"
        assert result.body["code"] == "STARTUP_INCOMPLETE"

    def test_ready(self, health_service, readiness):
        readiness.set(ServiceState.READY)
        result = health_service.readiness()
        assert result.status_code == 200
        assert result.body == {"status": "ready"}

    @pytest.mark.parametrize("state", [ServiceState.DEGRADED, ServiceState.SHUTTING_DOWN])
    def test_not_ready_states(self, health_service, readiness, state):
        readiness.set(ServiceState.READY)
        readiness.set(state)
        result = health_service.readiness()
        assert result.status_code == 503
        assert result.body["state"] == state.value
        assert result.body["code"] == "NOT_READY"

    def test_internal_fault_is_reported_as_probe_failure(self, health_service, monkeypatch):
        monkeypatch.setattr(health_service.state, "get", lambda: 1 / 0)
        result = health_service.readiness()
        assert result.status_code == 503
        assert result.body["error"]["code"] == "PROBE_FAILURE"


class TestMetricsSnapshot:
    """Merged registry, system and service samples"""

    def test_includes_system_and_service_gauges(self, health_service, sampler, readiness, registry):
        sampler.refresh()
        readiness.set(ServiceState.READY)
        registry.incr_counter("api_requests_total", {"method": "GET", "path": "/", "status": "200"}, 1)

        samples = health_service.metrics_snapshot()
        by_name = _by_name(samples)

        assert by_name[("system_cpu_usage", ())].value == 0.25
        assert by_name[("system_mem_used", ())].value == 512 * 1024 * 1024
        assert by_name[("system_sample_stale", ())].value == 0.0
        assert by_name[("service_ready", ())].value == 1.0
        assert ("api_requests_total", (("method", "GET"), ("path", "/"), ("status", "200"))) in by_name

        info = [s for s in samples if s.name == "service_info"][0]
        assert dict(info.labels)["service_name"] == health_service.settings.service_name

        assert [s.name for s in samples] == sorted(s.name for s in samples)

    def test_sampling_failure_keeps_last_value_flagged_stale(self, health_service, sampler, sample_source, clock):
        sampler.refresh()
        sample_source.failing = True
        sample_source.cpu_fraction = 0.8
        clock.advance(7)
        sampler.refresh()

        by_name = _by_name(health_service.metrics_snapshot())
        cpu = by_name[("system_cpu_usage", ())]
        assert cpu.value == 0.25
        assert cpu.stale
        assert by_name[("system_sample_stale", ())].value == 1.0
        assert by_name[("system_sample_age_seconds", ())].value == pytest.approx(7)

    def test_not_ready_reports_zero(self, health_service):
        by_name = _by_name(health_service.metrics_snapshot())
        assert by_name[("service_ready", ())].value == 0.0

    def test_info(self, health_service, clock):
        clock.advance(3)
        info = health_service.info()
        assert info["state"] == "starting"
        assert info["uptime_seconds"] == pytest.approx(3)
