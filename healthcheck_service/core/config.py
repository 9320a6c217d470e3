# healthcheck_service/core/config.py
"""
Configuration Module
Service settings read from the environment, overridable per instance
"""

import math
import os
from typing import Optional, List, Dict, Any, Tuple

from healthcheck_service.core.exceptions import ConfigurationError

# Prometheus client default latency buckets (seconds)
DEFAULT_BUCKETS: Tuple[float, ...] = (
    0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0,
)

DEFAULT_EXCLUDE_PATHS: Tuple[str, ...] = ("/health/live", "/health/ready", "/metrics", "/metrics/json")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_number(name: str, default: str, cast=float):
    """Read a numeric environment variable, ConfigurationError if malformed"""
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r}", details={"variable": name, "value": raw}
        ) from e


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return _env_number(name, raw)


def parse_buckets(raw: str) -> Tuple[float, ...]:
    """Parse a comma separated list of bucket upper bounds"""
    try:
        return tuple(float(part) for part in raw.split(",") if part.strip())
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid histogram bucket list: {raw!r}", details={"value": raw}
        ) from e


class Settings:
    """Service settings.

    Class attributes carry the environment-derived defaults; keyword
    arguments passed to the constructor override them for one instance.
    All values are treated as immutable once the application is built.
    """

    # Service identity
    service_name: str = os.getenv("SERVICE_NAME", "healthcheck-service")
    version: str = os.getenv("VERSION", "0.1.0")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = _env_bool("DEBUG", "false")

    # Server
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = _env_number("PORT", "5000", int)

    # Timers (seconds)
    sample_interval: float = _env_number("SAMPLE_INTERVAL", "5")
    heartbeat_interval: float = _env_number("HEARTBEAT_INTERVAL", "10")

    # Lifecycle
    drain_timeout: float = _env_number("DRAIN_TIMEOUT", "30")
    startup_grace_period: Optional[float] = _env_optional_float("STARTUP_GRACE_PERIOD")
    ready_on_startup: bool = _env_bool("READY_ON_STARTUP", "true")
    degrade_after_failures: int = _env_number("DEGRADE_AFTER_FAILURES", "3", int)

    # Metrics
    histogram_buckets: Tuple[float, ...] = (
        parse_buckets(os.environ["HISTOGRAM_BUCKETS"])
        if os.getenv("HISTOGRAM_BUCKETS")
        else DEFAULT_BUCKETS
    )
    telemetry_exclude_paths: List[str] = (
        [p.strip() for p in os.environ["TELEMETRY_EXCLUDE_PATHS"].split(",") if p.strip()]
        if os.getenv("TELEMETRY_EXCLUDE_PATHS") is not None
        else list(DEFAULT_EXCLUDE_PATHS)
    )

    # OpenTelemetry push export; disabled unless an endpoint is set
    otlp_endpoint: Optional[str] = os.getenv("OTLP_ENDPOINT") or None
    otlp_export_interval: float = _env_number("OTLP_EXPORT_INTERVAL", "60")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "text")
    log_dir: Optional[str] = os.getenv("LOG_DIR") or None

    def __init__(self, **overrides: Any):
        for key, value in overrides.items():
            if key.startswith("_") or not hasattr(type(self), key) or callable(getattr(type(self), key)):
                raise ConfigurationError(f"Unknown setting: {key}", details={"setting": key})
            setattr(self, key, value)
        if isinstance(self.histogram_buckets, str):
            self.histogram_buckets = parse_buckets(self.histogram_buckets)
        self.histogram_buckets = tuple(float(b) for b in self.histogram_buckets)
        self.validate()

    def validate(self) -> None:
        """Reject settings that would make the service misbehave"""
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Port out of range: {self.port}")
        for name in ("sample_interval", "heartbeat_interval", "otlp_export_interval"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive", details={name: getattr(self, name)})
        if self.drain_timeout < 0:
            raise ConfigurationError("drain_timeout must not be negative")
        if self.startup_grace_period is not None and self.startup_grace_period <= 0:
            raise ConfigurationError("startup_grace_period must be positive when set")
        if self.degrade_after_failures < 1:
            raise ConfigurationError("degrade_after_failures must be at least 1")
        validate_buckets(self.histogram_buckets)

    def get_settings_dict(self) -> Dict[str, Any]:
        """Get all settings as dictionary"""
        result = {}
        for key in dir(self):
            if key.startswith("_"):
                continue
            val = getattr(self, key)
            if callable(val):
                continue
            result[key] = val
        return result


def validate_buckets(buckets: Tuple[float, ...]) -> Tuple[float, ...]:
    """Check bucket bounds are finite and strictly increasing"""
    if not buckets:
        raise ConfigurationError("At least one histogram bucket bound is required")
    previous = None
    for bound in buckets:
        if math.isnan(bound) or math.isinf(bound):
            raise ConfigurationError(
                "Histogram bucket bounds must be finite (+Inf is implicit)",
                details={"buckets": list(buckets)},
            )
        if previous is not None and bound <= previous:
            raise ConfigurationError(
                "Histogram bucket bounds must be strictly increasing",
                details={"buckets": list(buckets)},
            )
        previous = bound
    return tuple(buckets)


# Default settings instance
settings = Settings()
