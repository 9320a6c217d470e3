# ================================
# FILE: healthcheck_service/api/dependencies.py
# ================================

from fastapi import Request

from healthcheck_service.core.health_service import HealthService
from healthcheck_service.core.prometheus_export import PrometheusExporter


# Collaborators are built once per application by create_app() and kept on app.state
def get_health_service(request: Request) -> HealthService:
    return request.app.state.health_service


def get_exporter(request: Request) -> PrometheusExporter:
    return request.app.state.exporter
