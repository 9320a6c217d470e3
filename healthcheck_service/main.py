# ================================
# FILE: healthcheck_service/main.py
# ================================
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from healthcheck_service.api.health_routes import router as health_router
from healthcheck_service.api.routes import router as api_router
from healthcheck_service.core.background_tasks import BackgroundTasks, shutdown
from healthcheck_service.core.config import Settings, settings as default_settings
from healthcheck_service.core.exception_handlers import register_exception_handlers
from healthcheck_service.core.health_service import HealthService
from healthcheck_service.core.logging_config import setup_logging
from healthcheck_service.core.metrics_registry import MetricsRegistry
from healthcheck_service.core.monitoring import ActiveRequestTracker, create_sampler
from healthcheck_service.core.otlp_export import OtlpMetricsExporter
from healthcheck_service.core.prometheus_export import PrometheusExporter
from healthcheck_service.interfaces.sample_source_interface import ISampleSource
from healthcheck_service.middleware.telemetry_middleware import RequestTelemetryMiddleware
from healthcheck_service.models.schemas import ServiceInfoResponse
from healthcheck_service.status import ReadinessState, ServiceState

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    state = app.state
    cfg: Settings = state.settings
    logger.info(
        "Starting %s %s (%s), pid %s",
        cfg.service_name, cfg.version, cfg.environment, os.getpid(),
    )

    try:
        # First reading before anything can scrape /metrics
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, state.sampler.refresh)

        if cfg.otlp_endpoint:
            state.otlp_exporter = OtlpMetricsExporter(state.health_service.metrics_snapshot, cfg)
            state.background_tasks.otlp_exporter = state.otlp_exporter

        await state.background_tasks.start()

        if cfg.ready_on_startup:
            state.readiness.set(ServiceState.READY)
        logger.info("Startup complete")
    except Exception:
        logger.exception("Startup failed")
        raise

    try:
        yield
    finally:
        logger.info("Shutting down...")
        try:
            await shutdown(
                state.readiness,
                state.tracker,
                state.background_tasks,
                cfg.drain_timeout,
            )
        except Exception as e:
            logger.exception("Error during shutdown: %s", e)
        if state.otlp_exporter is not None:
            state.otlp_exporter.shutdown()
        logger.info("Shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    sample_source: Optional[ISampleSource] = None,
) -> FastAPI:
    """
    Build the application and its collaborators

    Every call returns an independent instance with its own readiness
    state, registry and sampler.
    """
    cfg = settings or default_settings

    readiness = ReadinessState()
    registry = MetricsRegistry(buckets=cfg.histogram_buckets)
    sampler = create_sampler(sample_source)
    tracker = ActiveRequestTracker()
    health_service = HealthService(readiness, registry, sampler, cfg)
    exporter = PrometheusExporter(health_service.metrics_snapshot)
    background_tasks = BackgroundTasks(
        readiness,
        sampler,
        registry,
        sample_interval=cfg.sample_interval,
        heartbeat_interval=cfg.heartbeat_interval,
        degrade_after_failures=cfg.degrade_after_failures,
    )

    app = FastAPI(
        title=cfg.service_name,
        version=cfg.version,
        description="Liveness/readiness probes and service metrics",
        debug=cfg.debug,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Health", "description": "Liveness, readiness and metrics"},
            {"name": "API", "description": "Example API endpoints"},
        ],
    )

    app.state.settings = cfg
    app.state.readiness = readiness
    app.state.registry = registry
    app.state.sampler = sampler
    app.state.tracker = tracker
    app.state.health_service = health_service
    app.state.exporter = exporter
    app.state.background_tasks = background_tasks
    app.state.otlp_exporter = None

    app.add_middleware(
        RequestTelemetryMiddleware,
        registry=registry,
        tracker=tracker,
        exclude_paths=cfg.telemetry_exclude_paths,
    )

    register_exception_handlers(app)

    app.include_router(health_router, tags=["Health"])
    app.include_router(api_router, prefix="/api", tags=["API"])

    @app.get("/", tags=["Health"], response_model=ServiceInfoResponse)
    async def root():
        """Service information"""
        return ServiceInfoResponse(
            **health_service.info(),
            endpoints={
                "liveness": "/health/live",
                "readiness": "/health/ready",
                "metrics": "/metrics",
                "metrics_json": "/metrics/json",
                "docs": "/docs",
            },
        )

    return app


setup_logging(
    log_level=default_settings.log_level,
    log_format=default_settings.log_format,
    log_dir=default_settings.log_dir,
)

app = create_app()

# To run the server use either:
#   * python run.py
#   * uvicorn healthcheck_service.main:app --host 127.0.0.1 --port 5000
