"""
Application factory for apiforge.

``create_app`` binds and validates the configuration, selects the storage
backends and composes every capability enabled by the ``Features`` section.
Configuration errors are raised from here and are fatal: the host never
starts with missing or invalid options.

Usage:
    from apiforge import create_app

    app = create_app(environment="Development")
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Optional

from fastapi import FastAPI
from opentelemetry.sdk.trace.export import SpanExporter
from starlette.authentication import AuthenticationBackend

from apiforge import __version__, services
from apiforge.backends import build_backends
from apiforge.config import bind_application_options, load_configuration, resolve_environment
from apiforge.observability.logging import configure_logging, get_logger
from apiforge.observability.tracing import Telemetry

logger = get_logger(__name__)


def create_app(
    configuration: Optional[Mapping[str, Any]] = None,
    environment: Optional[str] = None,
    auth_backend: Optional[AuthenticationBackend] = None,
    span_exporter: Optional[SpanExporter] = None,
    settings_dir: Optional[str] = None,
    set_global_tracer_provider: bool = False,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        configuration: Merged configuration document; loaded from
            ``appsettings*.json`` in ``settings_dir`` when omitted
        environment: Host environment name (default: ``APIFORGE_ENVIRONMENT``
            or ``Production``)
        auth_backend: Authentication backend used when authorization is enabled
        span_exporter: Extra span exporter, e.g. an in-memory exporter in tests
        settings_dir: Directory holding the configuration documents
        set_global_tracer_provider: Install the tracer provider globally

    Returns:
        The composed application.

    Raises:
        MissingSectionError: if a required configuration section is absent
        OptionsValidationError: if any options record is invalid
    """
    environment = resolve_environment(environment)
    if configuration is None:
        configuration = load_configuration(settings_dir, environment)

    options = bind_application_options(configuration, environment)
    configure_logging(level=options.logging.level, format=options.logging.format)
    features = options.features
    backends = build_backends(options)

    telemetry: Optional[Telemetry] = None
    if features.open_telemetry:
        telemetry = Telemetry(options, span_exporter=span_exporter, set_global=set_global_tracer_provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await backends.start()
        logger.info(
            "host_started",
            environment=options.environment,
            backend=options.backend.value,
        )
        try:
            yield
        finally:
            await backends.close()
            if telemetry is not None:
                telemetry.shutdown()
            logger.info("host_stopped")

    app = FastAPI(
        title="apiforge",
        version=__version__,
        docs_url="/swagger" if features.swagger else None,
        redoc_url=None,
        openapi_url="/swagger/v1/swagger.json" if features.swagger else None,
        lifespan=lifespan,
    )
    app.state.started_at = time.monotonic()

    services.add_options(app, options)
    services.add_caching(app, backends)
    services.add_repositories(app)

    # Routes
    services.add_metrics(app)
    if features.health_check:
        services.add_health_checks(app)
    services.add_api(app, versioning=features.versioning)
    if features.graphql:
        services.add_graphql(app, options, backends)

    # Middleware, innermost first
    services.add_routing(app)
    if features.graphql and features.persisted_queries:
        services.add_persisted_queries(app, backends)
    if telemetry is not None:
        services.add_span_enrichment(app, telemetry)
    if features.authorization:
        services.add_authentication(app, options.authentication, auth_backend)
    services.add_request_logging(app)
    if features.cors:
        services.add_cors(app)
    if features.response_compression:
        services.add_response_compression(app, options.compression)
    if features.https_everywhere:
        services.add_https(app, options)
    services.add_server_limits(app, options.kestrel)
    if features.forwarded_headers:
        services.add_forwarded_headers(app, options.forwarded_headers)
    elif features.host_filtering:
        services.add_host_filtering(app, options.host_filtering)

    if telemetry is not None:
        telemetry.instrument(app)

    logger.info(
        "application_composed",
        environment=options.environment,
        features=features.model_dump(by_alias=True),
    )
    return app


__all__ = ["create_app"]
