"""Health check service: readiness state machine and metrics pipeline."""

__version__ = "0.1.0"
