"""
Service composition: one ``add_*`` function per capability.

Each function registers a capability on the FastAPI application and is only
called when its feature flag is enabled (see ``apiforge.app.create_app``).
Starlette wraps middleware in reverse order of registration, so functions
registering middleware are called innermost first.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, FastAPI
from starlette.authentication import AuthenticationBackend
from starlette.middleware.authentication import AuthenticationMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from apiforge.api import status, v1
from apiforge.auth import default_backend
from apiforge.backends import Backends
from apiforge.config import build_registry
from apiforge.graphql.persisted_queries import PersistedQueryMiddleware
from apiforge.graphql.server import GRAPHQL_PATH, build_graphql_router
from apiforge.middleware import (
    LowercasePathMiddleware,
    RequestLimitsMiddleware,
    ResponseCompressionMiddleware,
    StrictTransportSecurityMiddleware,
    global_exception_handler,
    log_requests,
)
from apiforge.observability.logging import get_logger
from apiforge.observability.tracing import SpanEnrichmentMiddleware, Telemetry
from apiforge.options import (
    ApplicationOptions,
    AuthenticationOptions,
    CompressionOptions,
    ForwardedHeadersOptions,
    HostFilteringOptions,
    ServerOptions,
)
from apiforge.repositories import DroidRepository, HumanRepository

logger = get_logger(__name__)


def add_options(app: FastAPI, options: ApplicationOptions) -> None:
    app.state.options = options
    app.state.options_registry = build_registry(options)


def add_caching(app: FastAPI, backends: Backends) -> None:
    """Expose the distributed cache selected for the storage backend."""
    app.state.backends = backends
    app.state.cache = backends.cache


def add_repositories(app: FastAPI) -> None:
    app.state.humans = HumanRepository()
    app.state.droids = DroidRepository()


def add_routing(app: FastAPI) -> None:
    app.add_middleware(LowercasePathMiddleware)


def add_persisted_queries(app: FastAPI, backends: Backends) -> None:
    app.add_middleware(PersistedQueryMiddleware, storage=backends.query_storage, path=GRAPHQL_PATH)


def add_span_enrichment(app: FastAPI, telemetry: Telemetry) -> None:
    app.add_middleware(SpanEnrichmentMiddleware, enricher=telemetry.enricher)


def add_authentication(
    app: FastAPI,
    options: AuthenticationOptions,
    backend: Optional[AuthenticationBackend] = None,
) -> None:
    app.add_middleware(AuthenticationMiddleware, backend=backend or default_backend(options))


def add_request_logging(app: FastAPI) -> None:
    """Correlation IDs, request logs, HTTP metrics and the JSON 500 handler."""
    app.middleware("http")(log_requests)
    app.add_exception_handler(Exception, global_exception_handler)


def add_cors(app: FastAPI) -> None:
    # AllowAny policy
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


def add_response_compression(app: FastAPI, options: CompressionOptions) -> None:
    app.add_middleware(
        ResponseCompressionMiddleware,
        mime_types=options.mime_types,
        minimum_size=options.minimum_size,
    )


def add_https(app: FastAPI, options: ApplicationOptions) -> None:
    """Strict-Transport-Security outside Development, then HTTPS redirection."""
    if not options.is_development:
        app.add_middleware(
            StrictTransportSecurityMiddleware,
            preload=options.features.hsts_preload,
        )
    app.add_middleware(HTTPSRedirectMiddleware)


def add_server_limits(app: FastAPI, options: ServerOptions) -> None:
    app.add_middleware(
        RequestLimitsMiddleware,
        max_body_size=options.limits.max_request_body_size,
        max_header_count=options.limits.max_request_header_count,
    )


def add_host_filtering(app: FastAPI, options: HostFilteringOptions) -> None:
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=options.allowed_hosts)


def add_forwarded_headers(app: FastAPI, options: ForwardedHeadersOptions) -> None:
    app.add_middleware(
        ProxyHeadersMiddleware,
        trusted_hosts=",".join(options.trusted_proxies) or "*",
    )


def add_health_checks(app: FastAPI) -> None:
    app.include_router(status.health_router)


def add_metrics(app: FastAPI) -> None:
    app.include_router(status.metrics_router)


def add_api(app: FastAPI, versioning: bool) -> None:
    """Mount the REST API; with versioning, unversioned paths assume the default version."""
    if not versioning:
        app.include_router(v1.router)
        return
    version_header = [Depends(v1.api_version_header)]
    app.include_router(v1.router, prefix="/v1", dependencies=version_header)
    app.include_router(v1.router, dependencies=version_header, include_in_schema=False)


def add_graphql(app: FastAPI, options: ApplicationOptions, backends: Backends) -> None:
    router = build_graphql_router(
        options,
        backends.pubsub,
        humans=app.state.humans,
        droids=app.state.droids,
    )
    app.include_router(router, prefix=GRAPHQL_PATH)


__all__ = [
    "add_api",
    "add_authentication",
    "add_caching",
    "add_cors",
    "add_forwarded_headers",
    "add_graphql",
    "add_health_checks",
    "add_host_filtering",
    "add_https",
    "add_metrics",
    "add_options",
    "add_persisted_queries",
    "add_repositories",
    "add_request_logging",
    "add_response_compression",
    "add_routing",
    "add_server_limits",
    "add_span_enrichment",
]
