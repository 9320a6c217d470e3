# healthcheck_service/api/health_routes.py
import logging
import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from healthcheck_service.api.dependencies import get_exporter, get_health_service
from healthcheck_service.core.exceptions import ErrorCode
from healthcheck_service.core.health_service import HealthService
from healthcheck_service.core.prometheus_export import PrometheusExporter
from healthcheck_service.models.schemas import MetricSampleModel, MetricsSnapshotResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health/live", name="liveness-probe")
async def liveness(service: HealthService = Depends(get_health_service)) -> JSONResponse:
    result = service.liveness()
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/health/ready", name="readiness-probe")
async def readiness(service: HealthService = Depends(get_health_service)) -> JSONResponse:
    result = service.readiness()
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/metrics", name="prometheus-metrics")
async def metrics(
    request: Request,
    exporter: PrometheusExporter = Depends(get_exporter),
) -> Response:
    """Prometheus scrape endpoint"""
    try:
        body, content_type = exporter.render()
    except Exception as exc:
        logger.exception("Metrics rendering failed", extra={"endpoint": request.url.path})
        return JSONResponse(
            status_code=503,
            content={
                "status": "error",
                "error": {"code": ErrorCode.PROBE_FAILURE.value, "message": f"metrics export failed: {exc}"},
            },
        )
    return Response(content=body, media_type=content_type)


@router.get("/metrics/json", name="metrics-json", response_model=MetricsSnapshotResponse)
async def metrics_json(service: HealthService = Depends(get_health_service)) -> MetricsSnapshotResponse:
    """Same snapshot as /metrics, as JSON"""
    samples = service.metrics_snapshot()
    return MetricsSnapshotResponse(
        timestamp=time.time(),
        metrics=[MetricSampleModel.from_sample(s) for s in samples],
    )
