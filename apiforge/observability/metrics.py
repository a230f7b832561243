"""Prometheus-compatible metrics export for apiforge.

Metrics exported:
- HTTP request count and duration, labelled by method, route and status
- GraphQL operations rejected by complexity, depth or paging limits
- Persisted query lookups by result (hit, miss, stored)
- Component health (1=healthy, 0=unhealthy)

Usage:
    from apiforge.observability.metrics import increment_counter, record_histogram

    increment_counter("graphql_operations_rejected_total", labels={"reason": "depth"})
    record_histogram("http_request_duration_seconds", 0.012, labels={...})
"""

from typing import Any, Dict, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


# Global registry for metrics
_registry = CollectorRegistry()

# HTTP Metrics
http_requests_total = Counter(
    "apiforge_http_requests_total",
    "Total number of HTTP requests",
    ["method", "route", "status_code"],
    registry=_registry,
)

http_request_duration_seconds = Histogram(
    "apiforge_http_request_duration_seconds",
    "Duration of HTTP requests in seconds",
    ["method", "route"],
    registry=_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)

# GraphQL Metrics
graphql_operations_rejected_total = Counter(
    "apiforge_graphql_operations_rejected_total",
    "Total number of GraphQL operations rejected before execution",
    ["reason"],  # reason: complexity, depth, paging, timeout
    registry=_registry,
)

persisted_query_lookups_total = Counter(
    "apiforge_persisted_query_lookups_total",
    "Total number of persisted query lookups by result",
    ["result"],  # result: hit, miss, stored
    registry=_registry,
)

# Health Metrics
health_status = Gauge(
    "apiforge_health_status",
    "Health status of components (1=healthy, 0=unhealthy)",
    ["component"],
    registry=_registry,
)


def increment_counter(
    metric_name: str,
    value: float = 1.0,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Increment a counter metric.

    Args:
        metric_name: Name of the counter (without apiforge_ prefix)
        value: Amount to increment by (default: 1.0)
        labels: Optional labels as key-value pairs

    Example:
        >>> increment_counter("persisted_query_lookups_total", labels={"result": "hit"})
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Counter):
        if labels:
            metric.labels(**labels).inc(value)
        else:
            metric.inc(value)


def record_histogram(
    metric_name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Record a histogram observation.

    Args:
        metric_name: Name of the histogram (without apiforge_ prefix)
        value: Value to observe
        labels: Optional labels as key-value pairs
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Histogram):
        if labels:
            metric.labels(**labels).observe(value)
        else:
            metric.observe(value)


def set_gauge(
    metric_name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Set a gauge metric value.

    Args:
        metric_name: Name of the gauge (without apiforge_ prefix)
        value: Value to set
        labels: Optional labels as key-value pairs
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Gauge):
        if labels:
            metric.labels(**labels).set(value)
        else:
            metric.set(value)


def get_metrics_registry() -> CollectorRegistry:
    return _registry


def get_metrics_output() -> bytes:
    """Get Prometheus-formatted metrics output."""
    return generate_latest(_registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST


def _get_metric(metric_name: str) -> Any:
    """Get metric by name, with or without the apiforge_ prefix."""
    if metric_name.startswith("apiforge_"):
        metric_name = metric_name[len("apiforge_"):]

    return globals().get(metric_name)


__all__ = [
    "increment_counter",
    "record_histogram",
    "set_gauge",
    "get_metrics_registry",
    "get_metrics_output",
    "get_metrics_content_type",
    "http_requests_total",
    "http_request_duration_seconds",
    "graphql_operations_rejected_total",
    "persisted_query_lookups_total",
    "health_status",
]
