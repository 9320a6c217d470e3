# healthcheck_service/models/system_snapshot.py
"""
System resource snapshot produced by sample sources.
"""
from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class SystemSnapshot:
    """CPU/memory reading at a monotonic instant.

    ``stale`` is set when the reading is a re-served last good value
    because the latest OS query failed.
    """

    cpu_fraction: float
    mem_used_bytes: int
    sampled_at: float
    stale: bool = False

    def age(self, now: float) -> float:
        """Seconds since the reading was taken"""
        return max(0.0, now - self.sampled_at)

    def as_stale(self) -> "SystemSnapshot":
        return replace(self, stale=True)
