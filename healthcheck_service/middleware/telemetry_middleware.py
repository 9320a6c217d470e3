# ================================
# FILE: healthcheck_service/middleware/telemetry_middleware.py
# ================================

import time
import uuid
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from healthcheck_service.core.metrics_registry import MetricsRegistry
from healthcheck_service.core.monitoring import ActiveRequestTracker

logger = logging.getLogger(__name__)
perf_logger = logging.getLogger("performance")

REQUESTS_TOTAL = "api_requests_total"
REQUEST_DURATION = "api_request_duration_seconds"
ERRORS_TOTAL = "api_errors_total"
IN_FLIGHT = "api_requests_in_flight"

# path label shared by every request no route matched
UNMATCHED_PATH = "<unmatched>"


@dataclass(frozen=True)
class RequestOutcome:
    """What one request did; consumed immediately and discarded"""

    method: str
    path: str
    status_code: int
    duration: float
    error_type: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error_type is not None or self.status_code >= 400


def classify_error(status_code: int, raised: bool = False) -> Optional[str]:
    """Map an outcome to the api_errors_total ``type`` label"""
    if raised:
        return "unhandled_exception"
    if status_code >= 500:
        return "server_error"
    if status_code >= 400:
        return "client_error"
    return None


def record_outcome(registry: MetricsRegistry, outcome: RequestOutcome) -> None:
    """Apply one request outcome to the registry"""
    registry.incr_counter(
        REQUESTS_TOTAL,
        {"method": outcome.method, "path": outcome.path, "status": str(outcome.status_code)},
        1,
    )
    registry.observe_histogram(
        REQUEST_DURATION, {"method": outcome.method, "path": outcome.path}, outcome.duration
    )
    if outcome.is_error:
        error_type = outcome.error_type or classify_error(outcome.status_code)
        registry.incr_counter(ERRORS_TOTAL, {"type": error_type}, 1)


def route_path(request: Request) -> str:
    """Matched route template, or UNMATCHED_PATH when routing found nothing"""
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or UNMATCHED_PATH


class RequestTelemetryMiddleware(BaseHTTPMiddleware):
    """Middleware recording request count, latency and errors for every API call"""

    def __init__(
        self,
        app,
        registry: MetricsRegistry,
        tracker: Optional[ActiveRequestTracker] = None,
        exclude_paths: Iterable[str] = (),
    ):
        super().__init__(app)
        self.registry = registry
        self.tracker = tracker or ActiveRequestTracker()
        self.exclude_paths = frozenset(exclude_paths)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.monotonic()
        self.tracker.record_request_start()
        self.registry.add_gauge(IN_FLIGHT, None, 1)

        status_code = 500
        raised = False
        try:
            response = await call_next(request)
            status_code = response.status_code

        except Exception as e:
            raised = True
            logger.error(
                f"Request failed: {request.method} {request.url.path}: {e}",
                extra={"request_id": request_id},
                exc_info=True,
            )
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": request_id},
            )

        finally:
            duration = time.monotonic() - start_time
            self.tracker.record_request_end()
            self.registry.add_gauge(IN_FLIGHT, None, -1)
            outcome = RequestOutcome(
                method=request.method,
                path=route_path(request),
                status_code=status_code,
                duration=duration,
                error_type=classify_error(status_code, raised),
            )
            try:
                record_outcome(self.registry, outcome)
            except Exception:
                logger.exception("Failed to record request metrics", extra={"request_id": request_id})

            perf_logger.info(
                f"Request completed: {outcome.method} {outcome.path} - {outcome.status_code}",
                extra={
                    "request_id": request_id,
                    "method": outcome.method,
                    "endpoint": outcome.path,
                    "status_code": outcome.status_code,
                    "processing_time": duration,
                },
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time"] = f"{duration:.6f}"

        return response


__all__ = [
    "RequestTelemetryMiddleware",
    "RequestOutcome",
    "UNMATCHED_PATH",
    "classify_error",
    "record_outcome",
]
