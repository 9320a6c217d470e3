# ================================
# FILE: run.py
# ================================
"""
Main entry point for the health check service.

Runs uvicorn with a server whose signal handler flips readiness to
shutting_down before uvicorn starts its graceful shutdown, so load
balancers stop routing while in-flight requests drain.
"""
import logging
import sys
import traceback

import uvicorn

from healthcheck_service.status import ReadinessState, ServiceState

logger = logging.getLogger("healthcheck_service.run")


class DrainingServer(uvicorn.Server):
    """uvicorn server that marks the service as shutting down on exit signals"""

    def __init__(self, config: uvicorn.Config, readiness: ReadinessState):
        super().__init__(config)
        self.readiness = readiness

    def handle_exit(self, sig, frame) -> None:
        if self.readiness.get() is not ServiceState.SHUTTING_DOWN:
            logger.info("Received signal %s, no longer ready", sig)
        self.readiness.set(ServiceState.SHUTTING_DOWN)
        super().handle_exit(sig, frame)


def main() -> None:
    try:
        from healthcheck_service.main import app
        from healthcheck_service.core.config import settings
    except Exception as exc:
        logger.error("Failed to import the application. Startup aborted.")
        logger.error("Error: %s", exc)
        logger.error("Traceback:\n%s", traceback.format_exc())
        sys.exit(1)

    logger.info(
        "Starting uvicorn server on %s:%d (drain_timeout=%ss, log_level=%s)",
        settings.host,
        settings.port,
        settings.drain_timeout,
        settings.log_level,
    )

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=settings.drain_timeout,
    )
    server = DrainingServer(config, app.state.readiness)

    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Shutdown requested (KeyboardInterrupt). Exiting gracefully.")
    except Exception as exc:
        logger.exception("Unexpected exception while running uvicorn: %s", exc)
        sys.exit(2)


if __name__ == "__main__":
    main()
