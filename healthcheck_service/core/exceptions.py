"""
Custom Exceptions Module
Defines the exceptions raised by the health and metrics core
"""
from enum import Enum
from typing import Dict, Any, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in diagnostic bodies"""

    # Metrics errors
    INVALID_DELTA = "INVALID_DELTA"
    METRIC_TYPE_MISMATCH = "METRIC_TYPE_MISMATCH"

    # Sampling errors
    STALE_SAMPLE = "STALE_SAMPLE"

    # Readiness
    NOT_READY = "NOT_READY"
    STARTUP_INCOMPLETE = "STARTUP_INCOMPLETE"
    PROBE_FAILURE = "PROBE_FAILURE"

    # Request errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # System errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class HealthServiceException(Exception):
    """Base exception for the health check service"""
    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.code = code
        super().__init__(self.message)


# Metrics-related exceptions
class InvalidDelta(HealthServiceException):
    """Raised when a counter is incremented by a negative (or NaN) amount"""
    def __init__(self, message: str = "Counter delta must be non-negative", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details, code=ErrorCode.INVALID_DELTA)


class MetricTypeMismatch(HealthServiceException):
    """Raised when a metric name is reused with a different kind"""
    def __init__(self, message: str = "Metric already registered with another kind", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, details=details, code=ErrorCode.METRIC_TYPE_MISMATCH)


# Sampling exceptions
class StaleSample(HealthServiceException):
    """Raised by a sample source when the OS query fails.

    Never reaches metrics consumers: the sampler converts it into a
    staleness flag on the last good snapshot.
    """
    def __init__(self, message: str = "System sample unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=503, details=details, code=ErrorCode.STALE_SAMPLE)


# Readiness exceptions
class NotReady(HealthServiceException):
    """The service is not in the ready state"""
    def __init__(self, message: str = "Service is not ready", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=503, details=details, code=ErrorCode.NOT_READY)


class StartupIncomplete(NotReady):
    """Readiness queried before the first transition out of starting"""
    def __init__(self, message: str = "Service startup has not completed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)
        self.code = ErrorCode.STARTUP_INCOMPLETE


class ConfigurationError(HealthServiceException):
    """Raised when configuration is invalid"""
    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, details=details, code=ErrorCode.CONFIGURATION_ERROR)


__all__ = [
    "ErrorCode",
    "HealthServiceException",
    "InvalidDelta",
    "MetricTypeMismatch",
    "StaleSample",
    "NotReady",
    "StartupIncomplete",
    "ConfigurationError",
]
