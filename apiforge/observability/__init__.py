"""Observability and monitoring infrastructure for apiforge.

Components:
    - logging: Structured logging with structlog
    - metrics: Prometheus metrics export
    - health: Health checks behind the status endpoints
    - tracing: OpenTelemetry tracer provider and span enrichment

Usage:
    from apiforge.observability import get_logger, increment_counter

    logger = get_logger(__name__)
    logger.info("host_started", environment="Production")
"""

from apiforge.observability.logging import configure_logging, get_logger
from apiforge.observability.metrics import (
    increment_counter,
    record_histogram,
    set_gauge,
    get_metrics_registry,
)
from apiforge.observability.health import check_health, HealthStatus

__all__ = [
    "get_logger",
    "configure_logging",
    "increment_counter",
    "record_histogram",
    "set_gauge",
    "get_metrics_registry",
    "check_health",
    "HealthStatus",
]
