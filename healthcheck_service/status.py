# healthcheck_service/status.py
"""
Process readiness state shared by the probes, the background timers and the
shutdown path. One instance is created per application and passed to every
component that needs it.
"""
from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Tuple, Union

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    """Lifecycle states of the service"""

    STARTING = "starting"
    READY = "ready"
    DEGRADED = "degraded"
    SHUTTING_DOWN = "shutting_down"


class ReadinessState:
    """Liveness/readiness state machine.

    Writes are serialized by a lock; reads return the latest published
    ``(state, changed_at)`` pair without locking. ``SHUTTING_DOWN`` is
    terminal: once entered, later transitions are ignored.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        now = clock()
        self._started_at = now
        self._current: Tuple[ServiceState, float] = (ServiceState.STARTING, now)
        self._left_startup = False

    def get(self) -> ServiceState:
        """Return the latest state (non-blocking)"""
        return self._current[0]

    def set(self, new_state: Union[ServiceState, str]) -> ServiceState:
        """Move to ``new_state`` and return the effective state"""
        new_state = ServiceState(new_state)
        with self._lock:
            current, _ = self._current
            if current is ServiceState.SHUTTING_DOWN and new_state is not ServiceState.SHUTTING_DOWN:
                logger.warning(
                    "Ignoring transition to %s: service is shutting down", new_state.value
                )
                return current
            if current is new_state:
                return current
            self._current = (new_state, self._clock())
            if new_state is not ServiceState.STARTING:
                self._left_startup = True

        logger.info("Readiness state: %s -> %s", current.value, new_state.value)
        return new_state

    @property
    def changed_at(self) -> float:
        """Monotonic instant of the last effective transition"""
        return self._current[1]

    @property
    def started_at(self) -> float:
        return self._started_at

    @property
    def has_left_startup(self) -> bool:
        return self._left_startup

    def time_in_state(self) -> float:
        """Seconds spent in the current state"""
        return max(0.0, self._clock() - self._current[1])

    def uptime(self) -> float:
        return max(0.0, self._clock() - self._started_at)

    @property
    def is_ready(self) -> bool:
        return self.get() is ServiceState.READY

    def __repr__(self) -> str:
        return f"ReadinessState(state={self.get().value!r})"
