# ================================
# FILE: tests/conftest.py
# ================================

import pytest
from fastapi.testclient import TestClient

from healthcheck_service.core.config import Settings
from healthcheck_service.core.exceptions import StaleSample
from healthcheck_service.core.health_service import HealthService
from healthcheck_service.core.metrics_registry import MetricsRegistry
from healthcheck_service.core.monitoring import SystemSampler
from healthcheck_service.interfaces.sample_source_interface import ISampleSource
from healthcheck_service.main import create_app
from healthcheck_service.models.system_snapshot import SystemSnapshot
from healthcheck_service.status import ReadinessState


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSampleSource(ISampleSource):
    """Sample source returning scripted readings; fails while ``failing`` is set"""

    def __init__(self, cpu_fraction: float = 0.25, mem_used_bytes: int = 512 * 1024 * 1024, clock=None):
        self.cpu_fraction = cpu_fraction
        self.mem_used_bytes = mem_used_bytes
        self.failing = False
        self.calls = 0
        self._clock = clock or FakeClock()

    def sample(self) -> SystemSnapshot:
        self.calls += 1
        if self.failing:
            raise StaleSample("simulated OS failure")
        return SystemSnapshot(self.cpu_fraction, self.mem_used_bytes, self._clock())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_source(clock):
    return FakeSampleSource(clock=clock)


@pytest.fixture
def test_settings():
    return Settings(
        sample_interval=0.05,
        heartbeat_interval=0.05,
        drain_timeout=1.0,
        startup_grace_period=None,
        log_dir=None,
    )


@pytest.fixture
def readiness(clock):
    return ReadinessState(clock=clock)


@pytest.fixture
def registry(clock):
    return MetricsRegistry(buckets=(0.1, 0.5, 1.0), clock=clock)


@pytest.fixture
def sampler(sample_source, clock):
    return SystemSampler(sample_source, clock=clock)


@pytest.fixture
def health_service(readiness, registry, sampler, test_settings, clock):
    return HealthService(readiness, registry, sampler, test_settings, clock=clock)


@pytest.fixture
def app(test_settings, sample_source):
    """Fresh application per test; lifespan does not run unless the client is entered"""
    return create_app(test_settings, sample_source=sample_source)


@pytest.fixture
def client(app):
    """Test client without lifespan: readiness stays in starting"""
    return TestClient(app)


@pytest.fixture
def running_client(app):
    """Test client with startup and shutdown executed"""
    with TestClient(app) as c:
        yield c
