"""
Background Tasks Module
Periodic system sampling, heartbeat and the shutdown/drain sequence
"""
import asyncio
import logging
from typing import Optional

from healthcheck_service.core.metrics_registry import MetricsRegistry
from healthcheck_service.core.monitoring import ActiveRequestTracker, SystemSampler
from healthcheck_service.status import ReadinessState, ServiceState

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Manager for background tasks"""

    def __init__(
        self,
        readiness: ReadinessState,
        sampler: SystemSampler,
        registry: MetricsRegistry,
        sample_interval: float = 5.0,
        heartbeat_interval: float = 10.0,
        degrade_after_failures: int = 3,
    ):
        self.readiness = readiness
        self.sampler = sampler
        self.registry = registry
        self.sample_interval = sample_interval
        self.heartbeat_interval = heartbeat_interval
        self.degrade_after_failures = degrade_after_failures
        self.tasks = []
        self.running = False
        # set by the lifespan when OTLP export is enabled
        self.otlp_exporter = None
        self._degraded_by_sampler = False

    async def start(self):
        """Start all background tasks"""
        if self.running:
            logger.warning("Background tasks already running")
            return

        self.running = True
        logger.info("Starting background tasks")

        self.tasks.append(asyncio.create_task(self.periodic_sampling(), name="system-sampling"))
        self.tasks.append(asyncio.create_task(self.periodic_heartbeat(), name="heartbeat"))

        logger.info(f"Started {len(self.tasks)} background tasks")

    async def stop(self):
        """Stop all background tasks"""
        if not self.running:
            return

        logger.info("Stopping background tasks")
        self.running = False

        for task in self.tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self.tasks.clear()
        logger.info("Background tasks stopped")

    def _should_run(self) -> bool:
        return self.running and self.readiness.get() is not ServiceState.SHUTTING_DOWN

    async def sample_once(self):
        """Refresh the system snapshot off the event loop"""
        loop = asyncio.get_running_loop()
        snapshot = await loop.run_in_executor(None, self.sampler.refresh)
        self._update_degradation()
        return snapshot

    def _update_degradation(self):
        failures = self.sampler.consecutive_failures
        state = self.readiness.get()

        if failures >= self.degrade_after_failures and state is ServiceState.READY:
            logger.warning(
                f"System sampling failed {failures} times in a row, marking service degraded"
            )
            if self.readiness.set(ServiceState.DEGRADED) is ServiceState.DEGRADED:
                self._degraded_by_sampler = True
        elif failures == 0 and self._degraded_by_sampler:
            self._degraded_by_sampler = False
            if state is ServiceState.DEGRADED:
                logger.info("System sampling recovered, marking service ready")
                self.readiness.set(ServiceState.READY)

    async def periodic_sampling(self):
        """
        Periodically refresh CPU/memory readings

        Stops scheduling new samples once the service is shutting down.
        """
        logger.info(f"Starting periodic sampling (interval: {self.sample_interval}s)")

        while self._should_run():
            try:
                await asyncio.sleep(self.sample_interval)

                if not self._should_run():
                    break

                await self.sample_once()

            except asyncio.CancelledError:
                logger.info("Sampling task cancelled")
                raise
            except Exception as e:
                logger.error(f"Error in sampling task: {e}", exc_info=True)

        logger.info("Periodic sampling finished")

    async def periodic_heartbeat(self):
        """
        Count liveness heartbeats in service_up_total
        """
        logger.info(f"Starting heartbeat (interval: {self.heartbeat_interval}s)")

        while self.running:
            try:
                self.registry.incr_counter("service_up_total", {"status": "alive"}, 1)
                if self.otlp_exporter is not None:
                    self.otlp_exporter.sync_instruments()
                await asyncio.sleep(self.heartbeat_interval)

            except asyncio.CancelledError:
                logger.info("Heartbeat task cancelled")
                raise
            except Exception as e:
                logger.error(f"Error in heartbeat task: {e}", exc_info=True)
                await asyncio.sleep(self.heartbeat_interval)


async def shutdown(
    readiness: ReadinessState,
    tracker: ActiveRequestTracker,
    tasks: Optional[BackgroundTasks],
    drain_timeout: float,
) -> bool:
    """
    Stop taking traffic, let in-flight requests drain, stop the timers

    Returns True when every in-flight request finished within the timeout.
    """
    readiness.set(ServiceState.SHUTTING_DOWN)
    logger.info(
        f"Draining {tracker.active} in-flight request(s) (timeout: {drain_timeout}s)"
    )
    drained = await tracker.wait_idle(drain_timeout)
    if drained:
        logger.info("All in-flight requests drained")

    if tasks is not None:
        await tasks.stop()
    return drained
