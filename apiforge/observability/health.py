"""Health checks for apiforge components.

Supports the two probes exposed by the host:
- ``/status``: every registered component (external store included)
- ``/status/self``: liveness of the process only

Usage:
    from apiforge.observability.health import check_health

    status = await check_health(options, redis=client)
    return {"status": status.status, "components": status.components}
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from apiforge.observability.logging import get_logger
from apiforge.observability.metrics import set_gauge
from apiforge.options import ApplicationOptions

logger = get_logger(__name__)


@dataclass
class ComponentHealth:
    """Health status of a single component.

    Attributes:
        name: Component name
        status: Health status ("healthy" or "unhealthy")
        message: Human-readable status message
        latency_ms: Health check latency in milliseconds
        metadata: Additional component-specific metadata
    """

    name: str
    status: str  # "healthy" or "unhealthy"
    message: str
    latency_ms: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"


@dataclass
class HealthStatus:
    """Overall system health status."""

    status: str
    components: List[ComponentHealth]
    timestamp: str
    uptime_seconds: Optional[float] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "uptime_seconds": self.uptime_seconds,
            "components": [
                {
                    "name": c.name,
                    "status": c.status,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    "metadata": c.metadata,
                }
                for c in self.components
            ],
        }


def check_options_health(options: ApplicationOptions) -> ComponentHealth:
    """Report the bound configuration; options are validated at startup."""
    return ComponentHealth(
        name="options",
        status="healthy",
        message="Options bound and validated",
        latency_ms=0.0,
        metadata={
            "environment": options.environment,
            "backend": options.backend.value,
        },
    )


async def check_redis_health(redis: Any) -> ComponentHealth:
    """Check the external store with a PING round trip.

    Args:
        redis: Shared ``redis.asyncio.Redis`` client

    Returns:
        ComponentHealth with store status
    """
    start_time = time.time()

    try:
        await redis.ping()
        latency_ms = (time.time() - start_time) * 1000
        return ComponentHealth(
            name="redis",
            status="healthy",
            message="Redis operational",
            latency_ms=latency_ms,
        )
    except Exception as e:
        latency_ms = (time.time() - start_time) * 1000
        logger.error("redis_health_check_failed", error=str(e))
        return ComponentHealth(
            name="redis",
            status="unhealthy",
            message=f"Redis error: {str(e)}",
            latency_ms=latency_ms,
            metadata={"error": str(e)},
        )


async def check_health(
    options: ApplicationOptions,
    redis: Any = None,
    uptime_seconds: Optional[float] = None,
) -> HealthStatus:
    """Check overall system health.

    Args:
        options: Bound application options
        redis: Shared redis client, or None for the in-memory backend
        uptime_seconds: Host uptime reported in the response

    Returns:
        HealthStatus with overall and component-level health
    """
    components = [check_options_health(options)]
    if redis is not None:
        components.append(await check_redis_health(redis))

    all_healthy = all(c.is_healthy for c in components)
    overall_status = "healthy" if all_healthy else "unhealthy"

    for component in components:
        metric_value = 1.0 if component.is_healthy else 0.0
        set_gauge("health_status", metric_value, labels={"component": component.name})

    logger.debug(
        "health_check_completed",
        status=overall_status,
        components_count=len(components),
        healthy_count=sum(1 for c in components if c.is_healthy),
    )

    return HealthStatus(
        status=overall_status,
        components=components,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=uptime_seconds,
    )


def check_liveness() -> bool:
    """Liveness probe: the process is serving requests."""
    return True


__all__ = [
    "ComponentHealth",
    "HealthStatus",
    "check_health",
    "check_liveness",
    "check_options_health",
    "check_redis_health",
]
