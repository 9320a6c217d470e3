# ================================
# FILE: healthcheck_service/core/monitoring.py
# ================================

import asyncio
import threading
import time
import logging
from typing import Callable, Optional

import psutil

from healthcheck_service.core.exceptions import StaleSample
from healthcheck_service.interfaces.sample_source_interface import ISampleSource
from healthcheck_service.models.system_snapshot import SystemSnapshot

logger = logging.getLogger(__name__)


class PsutilSampleSource(ISampleSource):
    """CPU and memory sampling backed by psutil"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # cpu_percent(interval=None) measures since the previous call; the
        # first call only establishes the baseline
        try:
            psutil.cpu_percent(interval=None)
        except (psutil.Error, OSError) as e:
            logger.debug("Could not prime CPU sampling: %s", e)

    def sample(self) -> SystemSnapshot:
        try:
            cpu_percent = psutil.cpu_percent(interval=None)
            memory = psutil.virtual_memory()
        except (psutil.Error, OSError) as e:
            raise StaleSample(f"psutil query failed: {e}") from e

        cpu_fraction = min(1.0, max(0.0, cpu_percent / 100.0))
        return SystemSnapshot(
            cpu_fraction=cpu_fraction,
            mem_used_bytes=int(memory.used),
            sampled_at=self._clock(),
        )


class SystemSampler:
    """Keeps the latest system snapshot for the metrics path.

    ``refresh()`` is driven by a periodic timer; ``latest()`` is cheap and
    safe to call from any request. A failed refresh re-serves the last good
    snapshot flagged as stale, so consumers never see a missing value.
    """

    def __init__(self, source: ISampleSource, clock: Callable[[], float] = time.monotonic):
        self.source = source
        self._clock = clock
        self._lock = threading.Lock()
        self._latest = SystemSnapshot(0.0, 0, clock(), stale=True)
        self._has_sample = False
        self.consecutive_failures = 0
        self.total_failures = 0

    def refresh(self) -> SystemSnapshot:
        """Query the source once and publish the result"""
        try:
            snapshot = self.source.sample()
        except Exception as e:
            with self._lock:
                self.consecutive_failures += 1
                self.total_failures += 1
                self._latest = self._latest.as_stale()
                latest = self._latest
                failures = self.consecutive_failures
            logger.warning(
                "System sampling failed (%d consecutive), serving last good value: %s",
                failures, e,
            )
            return latest

        with self._lock:
            self._latest = snapshot
            self._has_sample = True
            self.consecutive_failures = 0
        return snapshot

    def latest(self) -> SystemSnapshot:
        return self._latest

    def age(self) -> float:
        return self._latest.age(self._clock())

    @property
    def has_sample(self) -> bool:
        """Whether at least one sample ever succeeded"""
        return self._has_sample


class ActiveRequestTracker:
    """Counts in-flight requests so shutdown can wait for them to drain"""

    def __init__(self):
        self._active = 0
        self._total = 0
        self._lock = threading.Lock()

    def record_request_start(self) -> int:
        with self._lock:
            self._active += 1
            self._total += 1
            return self._active

    def record_request_end(self) -> int:
        with self._lock:
            self._active = max(0, self._active - 1)
            return self._active

    @property
    def active(self) -> int:
        return self._active

    @property
    def total(self) -> int:
        return self._total

    async def wait_idle(self, timeout: float, poll_interval: float = 0.05) -> bool:
        """Wait until no request is in flight; False if ``timeout`` expired first"""
        deadline = time.monotonic() + timeout
        while self._active > 0:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("Drain timeout expired with %d request(s) in flight", self._active)
                return False
            await asyncio.sleep(min(poll_interval, remaining))
        return True


def create_sampler(source: Optional[ISampleSource] = None) -> SystemSampler:
    """Build a sampler over ``source`` (psutil by default)"""
    return SystemSampler(source or PsutilSampleSource())
