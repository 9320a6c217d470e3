"""
Health Service Module
Query facade behind the probe and metrics endpoints
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from healthcheck_service.core.config import Settings
from healthcheck_service.core.exceptions import ErrorCode, NotReady, StartupIncomplete
from healthcheck_service.core.metrics_registry import MetricKind, MetricSample, MetricsRegistry
from healthcheck_service.core.monitoring import SystemSampler
from healthcheck_service.status import ReadinessState, ServiceState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Status code and JSON body handed verbatim to the HTTP layer"""

    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return self.status_code == 200


class HealthService:
    """Liveness, readiness and metrics queries over the shared state.

    Probes are pure reads: they never block and never raise. Any fault while
    evaluating one is converted into a 503 with a diagnostic body.
    """

    def __init__(
        self,
        readiness: ReadinessState,
        registry: MetricsRegistry,
        sampler: SystemSampler,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = readiness
        self.registry = registry
        self.sampler = sampler
        self.settings = settings
        self._clock = clock

    def liveness(self) -> ProbeResult:
        """Answer "is the process alive enough to respond at all" """
        try:
            state = self.state.get()
            in_state = self.state.time_in_state()

            if state is ServiceState.SHUTTING_DOWN and in_state > self.settings.drain_timeout:
                return ProbeResult(503, {
                    "status": "not_alive",
                    "state": state.value,
                    "reason": f"Drain timeout of {self.settings.drain_timeout}s exceeded during shutdown",
                })

            grace = self.settings.startup_grace_period
            if state is ServiceState.STARTING and grace is not None and in_state > grace:
                return ProbeResult(503, {
                    "status": "not_alive",
                    "state": state.value,
                    "reason": f"Startup did not complete within {grace}s",
                })

            return ProbeResult(200, {"status": "alive"})
        except Exception as e:
            return self._probe_failure("liveness", e)

    def readiness(self) -> ProbeResult:
        """Answer "can the process serve real traffic right now" """
        try:
            state = self.state.get()
            if state is ServiceState.READY:
                return ProbeResult(200, {"status": "ready"})

            if state is ServiceState.STARTING and not self.state.has_left_startup:
                reason = StartupIncomplete()
            elif state is ServiceState.SHUTTING_DOWN:
                reason = NotReady("Service is shutting down")
            elif state is ServiceState.DEGRADED:
                reason = NotReady("Service is degraded")
            else:
                reason = NotReady()

            return ProbeResult(503, {
                "status": "not_ready",
                "state": state.value,
                "reason": reason.message,
                "code": reason.code.value,
            })
        except Exception as e:
            return self._probe_failure("readiness", e)

    def metrics_snapshot(self) -> List[MetricSample]:
        """Registry samples merged with system and service gauges"""
        samples = self.registry.snapshot()
        samples.extend(self._system_samples())
        samples.extend(self._service_samples())
        samples.sort(key=lambda s: (s.name, s.labels))
        return samples

    def info(self) -> Dict[str, Any]:
        """Service resource description for the root endpoint"""
        return {
            "service_name": self.settings.service_name,
            "version": self.settings.version,
            "environment": self.settings.environment,
            "state": self.state.get().value,
            "uptime_seconds": round(self.state.uptime(), 3),
        }

    def _system_samples(self) -> List[MetricSample]:
        snapshot = self.sampler.latest()
        now = self._clock()
        return [
            MetricSample("system_cpu_usage", MetricKind.GAUGE, (), snapshot.cpu_fraction,
                         snapshot.sampled_at, stale=snapshot.stale),
            MetricSample("system_mem_used", MetricKind.GAUGE, (), float(snapshot.mem_used_bytes),
                         snapshot.sampled_at, stale=snapshot.stale),
            MetricSample("system_sample_age_seconds", MetricKind.GAUGE, (), snapshot.age(now), now),
            MetricSample("system_sample_stale", MetricKind.GAUGE, (), 1.0 if snapshot.stale else 0.0, now),
        ]

    def _service_samples(self) -> List[MetricSample]:
        now = self._clock()
        info_labels = (
            ("environment", self.settings.environment),
            ("service_name", self.settings.service_name),
            ("version", self.settings.version),
        )
        return [
            MetricSample("service_ready", MetricKind.GAUGE, (),
                         1.0 if self.state.is_ready else 0.0, self.state.changed_at),
            MetricSample("service_uptime_seconds", MetricKind.GAUGE, (), self.state.uptime(), now),
            MetricSample("service_info", MetricKind.GAUGE, info_labels, 1.0, self.state.started_at),
        ]

    def _probe_failure(self, probe: str, exc: Exception) -> ProbeResult:
        logger.error("%s probe evaluation failed: %s", probe.capitalize(), exc, exc_info=True)
        return ProbeResult(503, {
            "status": "error",
            "error": {
                "code": ErrorCode.PROBE_FAILURE.value,
                "message": f"{probe} probe failed: {exc}",
            },
        })


__all__ = [
    "HealthService",
    "ProbeResult",
]
