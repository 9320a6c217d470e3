"""
OpenTelemetry push export of the health service snapshot.

Nothing is recorded twice: observable instruments read the same snapshot
that /metrics serves, and a PeriodicExportingMetricReader pushes it to an
OTLP collector over gRPC. Histograms are exported as ``<name>_count`` and
``<name>_sum`` series, since OpenTelemetry has no observable histogram.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.metrics import CallbackOptions, Observation
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource

from healthcheck_service.core.config import Settings
from healthcheck_service.core.metrics_registry import MetricKind, MetricSample
from healthcheck_service.core.prometheus_export import METRIC_HELP

logger = logging.getLogger(__name__)

METER_NAME = "healthcheck_service"
DEPLOYMENT_ENVIRONMENT_NAME = "deployment.environment.name"
NETWORK_LOCAL_ADDRESS = "network.local.address"

# Metrics the service always produces; anything else is picked up by sync_instruments()
KNOWN_METRICS: Dict[str, MetricKind] = {
    "api_requests_total": MetricKind.COUNTER,
    "api_errors_total": MetricKind.COUNTER,
    "api_request_duration_seconds": MetricKind.HISTOGRAM,
    "api_requests_in_flight": MetricKind.GAUGE,
    "service_up_total": MetricKind.COUNTER,
    "service_ready": MetricKind.GAUGE,
    "service_uptime_seconds": MetricKind.GAUGE,
    "service_info": MetricKind.GAUGE,
    "system_cpu_usage": MetricKind.GAUGE,
    "system_mem_used": MetricKind.GAUGE,
    "system_sample_age_seconds": MetricKind.GAUGE,
    "system_sample_stale": MetricKind.GAUGE,
}


def build_resource(settings: Settings) -> Resource:
    """Resource attributes identifying this service instance"""
    return Resource.create({
        SERVICE_NAME: settings.service_name,
        SERVICE_VERSION: settings.version,
        DEPLOYMENT_ENVIRONMENT_NAME: settings.environment,
        NETWORK_LOCAL_ADDRESS: settings.host,
    })


class OtlpMetricsExporter:
    """Pushes metrics snapshots to an OTLP collector on a fixed interval.

    ``reader`` replaces the periodic OTLP reader, e.g. with an
    ``InMemoryMetricReader`` in tests.
    """

    def __init__(
        self,
        snapshot: Callable[[], List[MetricSample]],
        settings: Settings,
        reader: Optional[MetricReader] = None,
    ):
        if reader is None:
            reader = PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=settings.otlp_endpoint),
                export_interval_millis=settings.otlp_export_interval * 1000,
            )
        self.reader = reader
        self._snapshot = snapshot
        self._lock = threading.Lock()
        self._instruments: Dict[str, MetricKind] = {}

        self.provider = MeterProvider(resource=build_resource(settings), metric_readers=[reader])
        self.meter = self.provider.get_meter(METER_NAME, settings.version)

        for name, kind in KNOWN_METRICS.items():
            self._register(name, kind)
        self.sync_instruments()

        logger.info(
            "OTLP metrics export to %s every %ss",
            settings.otlp_endpoint, settings.otlp_export_interval,
        )

    @property
    def instrument_names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._instruments))

    def sync_instruments(self) -> int:
        """Create instruments for metric names that appeared since the last call"""
        seen = {}
        for sample in self._snapshot():
            seen.setdefault(sample.name, sample.kind)
        created = 0
        for name, kind in seen.items():
            if self._register(name, kind):
                created += 1
        return created

    def shutdown(self) -> None:
        """Push a final export and stop the reader"""
        try:
            self.provider.shutdown()
        except Exception as e:
            logger.warning("OTLP exporter shutdown failed: %s", e)

    def _register(self, name: str, kind: MetricKind) -> bool:
        with self._lock:
            if name in self._instruments:
                return False
            self._instruments[name] = kind

        description = METRIC_HELP.get(name, name)
        if kind is MetricKind.COUNTER:
            self.meter.create_observable_counter(
                name, callbacks=[self._observe(name, "value")], description=description
            )
        elif kind is MetricKind.GAUGE:
            self.meter.create_observable_gauge(
                name, callbacks=[self._observe(name, "value")], description=description
            )
        else:
            self.meter.create_observable_counter(
                f"{name}_count", callbacks=[self._observe(name, "count")], description=description
            )
            self.meter.create_observable_up_down_counter(
                f"{name}_sum", callbacks=[self._observe(name, "sum")], description=description
            )
        return True

    def _observe(self, name: str, part: str):
        def callback(options: CallbackOptions) -> List[Observation]:
            observations = []
            for sample in self._snapshot():
                if sample.name != name:
                    continue
                if part == "count":
                    value = sample.value.count
                elif part == "sum":
                    value = sample.value.sum
                else:
                    value = sample.value
                observations.append(Observation(value, sample.labels_dict))
            return observations

        return callback


__all__ = [
    "OtlpMetricsExporter",
    "build_resource",
]
