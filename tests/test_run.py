# ================================
# FILE: tests/test_run.py
# ================================

import signal

import pytest
import uvicorn
from fastapi.testclient import TestClient

import run
from healthcheck_service.core.config import settings
from healthcheck_service.status import ServiceState


@pytest.fixture
def recorded_servers(monkeypatch):
    """Replace the uvicorn server so main() returns instead of serving"""
    servers = []

    class RecordingServer:
        def __init__(self, config, readiness):
            self.config = config
            self.readiness = readiness
            self.ran = False
            servers.append(self)

        def run(self):
            self.ran = True

    monkeypatch.setattr(run, "DrainingServer", RecordingServer)
    return servers


@pytest.mark.parametrize("drain_timeout", [0.5, 0, 2.7, 30])
def test_main_passes_drain_timeout_to_uvicorn(monkeypatch, recorded_servers, drain_timeout):
    monkeypatch.setattr(settings, "drain_timeout", drain_timeout)

    run.main()

    assert len(recorded_servers) == 1
    server = recorded_servers[0]
    assert server.ran
    assert server.config.timeout_graceful_shutdown == drain_timeout
    assert server.config.timeout_graceful_shutdown is not None


def test_main_uses_application_readiness(recorded_servers):
    from healthcheck_service.main import app

    run.main()
    assert recorded_servers[0].readiness is app.state.readiness


class TestDrainingServer:
    """Exit signal handling"""

    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    def test_exit_signal_marks_shutting_down(self, app, sig):
        readiness = app.state.readiness
        readiness.set(ServiceState.READY)

        server = run.DrainingServer(uvicorn.Config(app), readiness)
        server.handle_exit(sig, None)

        assert readiness.get() is ServiceState.SHUTTING_DOWN
        assert server.should_exit

        response = TestClient(app).get("/health/ready")
        assert response.status_code == 503
        assert response.json()["state"] == "shutting_down"

    def test_repeated_signal_keeps_shutting_down(self, app):
        readiness = app.state.readiness
        server = run.DrainingServer(uvicorn.Config(app), readiness)

        server.handle_exit(signal.SIGTERM, None)
        server.handle_exit(signal.SIGTERM, None)

        assert readiness.get() is ServiceState.SHUTTING_DOWN
        assert server.should_exit
