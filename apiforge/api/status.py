"""Status and metrics endpoints.

- ``/status``: every health check, including the external store (503 when unhealthy)
- ``/status/self``: liveness of the process only
- ``/metrics``: Prometheus exposition format
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from apiforge.observability.health import check_health, check_liveness
from apiforge.observability.logging import get_logger
from apiforge.observability.metrics import get_metrics_content_type, get_metrics_output

logger = get_logger(__name__)

health_router = APIRouter(tags=["status"])
metrics_router = APIRouter(tags=["status"])


@health_router.get("/status", response_class=JSONResponse)
async def status(request: Request) -> JSONResponse:
    """Comprehensive health check.

    Response Codes:
        200: All components healthy
        503: One or more components unhealthy
    """
    state = request.app.state
    health_status = await check_health(
        state.options,
        redis=state.backends.redis,
        uptime_seconds=time.monotonic() - state.started_at,
    )
    return JSONResponse(
        content=health_status.to_dict(),
        status_code=200 if health_status.is_healthy else 503,
    )


@health_router.get("/status/self", response_class=JSONResponse)
async def status_self() -> JSONResponse:
    is_alive = check_liveness()
    return JSONResponse(
        content={
            "status": "alive" if is_alive else "dead",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        status_code=200 if is_alive else 503,
    )


@metrics_router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=get_metrics_output(), media_type=get_metrics_content_type())


__all__ = ["health_router", "metrics_router"]
