"""
Prometheus exposition of the health service snapshot.

The snapshot is adapted into prometheus_client metric families by a custom
collector registered on a private registry; prometheus_client does the
text encoding.
"""
import itertools
import logging
from typing import Callable, Iterable, List, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import Metric
from prometheus_client.registry import Collector
from prometheus_client.utils import floatToGoString

from healthcheck_service.core.metrics_registry import HistogramValue, MetricKind, MetricSample

logger = logging.getLogger(__name__)

METRIC_HELP = {
    "api_requests_total": "Total API requests",
    "api_request_duration_seconds": "API request duration in seconds",
    "api_errors_total": "Total API requests that ended in an error",
    "api_requests_in_flight": "API requests currently being processed",
    "service_up_total": "Heartbeats emitted while the service is alive",
    "service_ready": "1 when the service is ready to serve traffic",
    "service_uptime_seconds": "Seconds since the service started",
    "service_info": "Service identity",
    "system_cpu_usage": "System CPU usage as a fraction of total capacity",
    "system_mem_used": "System memory in use (bytes)",
    "system_sample_age_seconds": "Age of the latest system resource sample",
    "system_sample_stale": "1 when the system sample is a re-served last good value",
}


def _family_name(name: str, kind: MetricKind) -> str:
    if kind is MetricKind.COUNTER and name.endswith("_total"):
        return name[: -len("_total")]
    return name


def build_metric(name: str, kind: MetricKind, samples: List[MetricSample]) -> Metric:
    """Turn all samples of one metric name into a prometheus_client family"""
    family = _family_name(name, kind)
    metric = Metric(family, METRIC_HELP.get(name, name), kind.value)

    for sample in samples:
        labels = sample.labels_dict
        if kind is MetricKind.COUNTER:
            metric.add_sample(f"{family}_total", labels, float(sample.value))
        elif kind is MetricKind.GAUGE:
            metric.add_sample(family, labels, float(sample.value))
        else:
            value: HistogramValue = sample.value
            for bound, cumulative in value.cumulative():
                metric.add_sample(
                    f"{family}_bucket", {**labels, "le": floatToGoString(bound)}, float(cumulative)
                )
            metric.add_sample(f"{family}_count", labels, float(value.count))
            metric.add_sample(f"{family}_sum", labels, float(value.sum))
    return metric


class SnapshotCollector(Collector):
    """Collector that reads a fresh snapshot on every scrape"""

    def __init__(self, snapshot: Callable[[], List[MetricSample]]):
        self._snapshot = snapshot

    def describe(self) -> Iterable[Metric]:
        return []

    def collect(self) -> Iterable[Metric]:
        samples = self._snapshot()
        for (name, kind), group in itertools.groupby(samples, key=lambda s: (s.name, s.kind)):
            yield build_metric(name, kind, list(group))


class PrometheusExporter:
    """Renders a snapshot source in the Prometheus text format"""

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, snapshot: Callable[[], List[MetricSample]]):
        self.registry = CollectorRegistry(auto_describe=False)
        self.registry.register(SnapshotCollector(snapshot))

    def render(self) -> Tuple[bytes, str]:
        body = generate_latest(self.registry)
        return body, self.content_type
