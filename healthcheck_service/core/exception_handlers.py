"""
Exception Handlers Module
Centralized exception handling for the FastAPI application
"""
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from healthcheck_service.core.exceptions import ErrorCode, HealthServiceException

logger = logging.getLogger(__name__)


async def health_service_exception_handler(
    request: Request,
    exc: HealthServiceException
) -> JSONResponse:
    """Handle domain exceptions raised by the health service"""
    logger.error(
        f"HealthServiceException: {exc.message}",
        extra={
            "status_code": exc.status_code,
            "endpoint": request.url.path,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code.value,
                "message": exc.message,
                "details": exc.details,
            },
            "status_code": exc.status_code,
            "path": request.url.path
        }
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP Exception: {exc.status_code} - {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "endpoint": request.url.path
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code,
            "path": request.url.path
        },
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors"""
    errors = [
        {
            "field": ".".join(str(x) for x in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        f"Rejected request with {len(errors)} invalid field(s)",
        extra={"status_code": 422, "endpoint": request.url.path}
    )

    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": ErrorCode.VALIDATION_ERROR.value,
                "message": "Request validation failed",
                "details": {"errors": errors},
            },
            "status_code": 422,
            "path": request.url.path
        }
    )


async def general_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Handle all other unhandled exceptions"""
    logger.error(
        f"Unhandled Exception: {str(exc)}",
        extra={"endpoint": request.url.path},
        exc_info=True
    )

    # Don't expose internal errors in production
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred.",
            },
            "status_code": 500,
            "path": request.url.path
        }
    )


def register_exception_handlers(app):
    """
    Register all exception handlers with the FastAPI app

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(HealthServiceException, health_service_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.debug("Exception handlers registered")


__all__ = [
    'register_exception_handlers',
    'health_service_exception_handler',
    'http_exception_handler',
    'validation_exception_handler',
    'general_exception_handler'
]
