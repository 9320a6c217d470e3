"""
Metrics Registry: the single source of truth for numeric observability state.

Every metric identity (name + label set) owns its own lock, so concurrent
request handlers updating different series never contend with each other.
The registry-level lock is only taken when an identity is first created and
when the identity list is copied for a snapshot.

## Usage

    registry = MetricsRegistry()

    registry.incr_counter("api_requests_total", {"method": "GET"}, 1)
    registry.set_gauge("queue_size", None, 5)
    registry.observe_histogram("api_request_duration_seconds", {"path": "/"}, 0.12)

    samples = registry.snapshot()
"""

from __future__ import annotations

import bisect
import logging
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from healthcheck_service.core.config import DEFAULT_BUCKETS, validate_buckets
from healthcheck_service.core.exceptions import InvalidDelta, MetricTypeMismatch

logger = logging.getLogger(__name__)

Labels = Tuple[Tuple[str, str], ...]
LabelsInput = Optional[Union[Mapping[str, str], Labels]]


class MetricKind(str, Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class HistogramValue:
    """Bucket counts plus running sum/count of a histogram series.

    ``upper_bounds`` always ends with ``+Inf``; ``bucket_counts`` holds the
    number of observations that fell into each bucket (not cumulative).
    """

    upper_bounds: Tuple[float, ...]
    bucket_counts: Tuple[int, ...]
    sum: float
    count: int

    def cumulative(self) -> List[Tuple[float, int]]:
        """(upper bound, cumulative count) pairs, Prometheus ``le`` style"""
        running = 0
        result = []
        for bound, count in zip(self.upper_bounds, self.bucket_counts):
            running += count
            result.append((bound, running))
        return result


@dataclass(frozen=True)
class MetricSample:
    """A point-in-time value of one metric identity"""

    name: str
    kind: MetricKind
    labels: Labels
    value: Union[float, HistogramValue]
    timestamp: float
    stale: bool = False

    @property
    def identity(self) -> Tuple[str, Labels]:
        return (self.name, self.labels)

    @property
    def labels_dict(self) -> Dict[str, str]:
        return dict(self.labels)


def normalize_labels(labels: LabelsInput) -> Labels:
    """Turn a mapping or pair sequence into the canonical sorted tuple"""
    if not labels:
        return ()
    items = labels.items() if isinstance(labels, Mapping) else labels
    return tuple(sorted((str(k), str(v)) for k, v in items))


class _Cell:
    """Storage for one metric identity, guarded by its own lock"""

    kind: MetricKind

    def __init__(self, clock: Callable[[], float]):
        self._clock = clock
        self._lock = threading.Lock()
        self._updated_at = clock()


class _CounterCell(_Cell):
    kind = MetricKind.COUNTER

    def __init__(self, clock: Callable[[], float]):
        super().__init__(clock)
        self._value = 0.0

    def add(self, delta: float) -> None:
        with self._lock:
            self._value += delta
            self._updated_at = self._clock()

    def read(self) -> Tuple[float, float]:
        with self._lock:
            return self._value, self._updated_at


class _GaugeCell(_Cell):
    kind = MetricKind.GAUGE

    def __init__(self, clock: Callable[[], float]):
        super().__init__(clock)
        self._value = 0.0

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value
            self._updated_at = self._clock()

    def add(self, delta: float) -> None:
        with self._lock:
            self._value += delta
            self._updated_at = self._clock()

    def read(self) -> Tuple[float, float]:
        with self._lock:
            return self._value, self._updated_at


class _HistogramCell(_Cell):
    kind = MetricKind.HISTOGRAM

    def __init__(self, clock: Callable[[], float], bounds: Tuple[float, ...]):
        super().__init__(clock)
        # finite bounds; the extra slot at the end is the +Inf bucket
        self._bounds = bounds
        self._counts = [0] * (len(bounds) + 1)
        self._sum = 0.0
        self._count = 0

    def observe(self, value: float) -> None:
        if math.isnan(value):
            index = len(self._bounds)
        else:
            index = bisect.bisect_left(self._bounds, value)
        with self._lock:
            self._counts[index] += 1
            # NaN counts toward +Inf and count only
            if not math.isnan(value):
                self._sum += value
            self._count += 1
            self._updated_at = self._clock()

    def read(self) -> Tuple[HistogramValue, float]:
        with self._lock:
            value = HistogramValue(
                upper_bounds=self._bounds + (math.inf,),
                bucket_counts=tuple(self._counts),
                sum=self._sum,
                count=self._count,
            )
            return value, self._updated_at


class MetricsRegistry:
    """
    Registry of counters, gauges and histograms keyed by metric identity.

    Histogram bucket bounds are fixed when the registry is built: ``buckets``
    applies to every histogram, ``histogram_buckets`` overrides it per name.
    """

    def __init__(
        self,
        buckets: Tuple[float, ...] = DEFAULT_BUCKETS,
        histogram_buckets: Optional[Mapping[str, Tuple[float, ...]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._buckets = validate_buckets(tuple(float(b) for b in buckets))
        self._histogram_buckets: Dict[str, Tuple[float, ...]] = {
            name: validate_buckets(tuple(float(b) for b in bounds))
            for name, bounds in (histogram_buckets or {}).items()
        }
        self._clock = clock
        self._cells: Dict[Tuple[str, Labels], _Cell] = {}
        self._kinds: Dict[str, MetricKind] = {}
        self._create_lock = threading.Lock()

    @property
    def buckets(self) -> Tuple[float, ...]:
        return self._buckets

    def buckets_for(self, name: str) -> Tuple[float, ...]:
        return self._histogram_buckets.get(name, self._buckets)

    def _cell(self, name: str, labels: Labels, kind: MetricKind) -> _Cell:
        key = (name, labels)
        cell = self._cells.get(key)
        if cell is None:
            with self._create_lock:
                registered = self._kinds.get(name)
                if registered is not None and registered is not kind:
                    raise MetricTypeMismatch(
                        f"Metric {name!r} is a {registered.value}, not a {kind.value}",
                        details={"name": name, "registered": registered.value, "requested": kind.value},
                    )
                cell = self._cells.get(key)
                if cell is None:
                    if kind is MetricKind.COUNTER:
                        cell = _CounterCell(self._clock)
                    elif kind is MetricKind.GAUGE:
                        cell = _GaugeCell(self._clock)
                    else:
                        cell = _HistogramCell(self._clock, self.buckets_for(name))
                    self._kinds[name] = kind
                    self._cells[key] = cell
        if cell.kind is not kind:
            raise MetricTypeMismatch(
                f"Metric {name!r} is a {cell.kind.value}, not a {kind.value}",
                details={"name": name, "registered": cell.kind.value, "requested": kind.value},
            )
        return cell

    def incr_counter(self, name: str, labels: LabelsInput = None, delta: float = 1) -> None:
        """Add a non-negative ``delta`` to a counter"""
        if delta < 0 or math.isnan(delta):
            logger.warning(
                "Rejected counter increment for %s: delta=%s", name, delta,
                extra={"metric": name, "delta": delta},
            )
            raise InvalidDelta(
                f"Counter {name!r} cannot be incremented by {delta}",
                details={"name": name, "delta": delta},
            )
        self._cell(name, normalize_labels(labels), MetricKind.COUNTER).add(float(delta))

    def set_gauge(self, name: str, labels: LabelsInput = None, value: float = 0.0) -> None:
        """Overwrite a gauge value"""
        self._cell(name, normalize_labels(labels), MetricKind.GAUGE).set(float(value))

    def add_gauge(self, name: str, labels: LabelsInput = None, delta: float = 1.0) -> None:
        """Move a gauge up or down by ``delta``"""
        self._cell(name, normalize_labels(labels), MetricKind.GAUGE).add(float(delta))

    def observe_histogram(self, name: str, labels: LabelsInput = None, value: float = 0.0) -> None:
        """Record ``value`` in its bucket; values above every bound land in +Inf"""
        self._cell(name, normalize_labels(labels), MetricKind.HISTOGRAM).observe(float(value))

    def get_value(self, name: str, labels: LabelsInput = None) -> Optional[Union[float, HistogramValue]]:
        """Current value of one identity, or None if it was never written"""
        cell = self._cells.get((name, normalize_labels(labels)))
        if cell is None:
            return None
        value, _ = cell.read()
        return value

    def kind_of(self, name: str) -> Optional[MetricKind]:
        return self._kinds.get(name)

    def snapshot(self) -> List[MetricSample]:
        """Read every identity, ordered by (name, labels).

        Each sample is consistent on its own; samples of different
        identities may come from slightly different instants.
        """
        with self._create_lock:
            cells = list(self._cells.items())

        samples = []
        for (name, labels), cell in sorted(cells, key=lambda item: item[0]):
            value, updated_at = cell.read()
            samples.append(MetricSample(name, cell.kind, labels, value, updated_at))
        return samples

    def __len__(self) -> int:
        return len(self._cells)
