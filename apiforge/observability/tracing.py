"""Distributed tracing with OpenTelemetry for apiforge.

This module provides:
- Telemetry: explicitly constructed handle owning the tracer provider, with
  defined instrument/shutdown lifecycle
- SpanEnricher: tags the active server span with request and response metadata
- SpanEnrichmentMiddleware: ASGI middleware applying the enricher per request

Span attributes follow the OpenTelemetry HTTP semantic conventions:

    http.flavor, http.scheme, http.client_ip,
    http.request_content_length, http.request_content_type,
    http.response_content_length, http.response_content_type,
    enduser.id, enduser.scope

Usage:
    telemetry = Telemetry(options)
    telemetry.instrument(app)
    ...
    telemetry.shutdown()
"""

from __future__ import annotations

import socket
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from apiforge.constants import OpenTelemetryAttributeName as Attr
from apiforge.constants import OpenTelemetryHttpFlavour as Flavour
from apiforge.exceptions import ProtocolNotRecognisedError
from apiforge.observability.logging import get_logger
from apiforge.options import ApplicationOptions, StorageBackend

logger = get_logger(__name__)


class ProtocolFlavorPolicy(str, Enum):
    """What the enricher does with an HTTP version it does not know."""

    STRICT = "strict"  # raise ProtocolNotRecognisedError
    RELAXED = "relaxed"  # tag http.flavor as "unknown"


_FLAVOURS = {
    "1.0": Flavour.HTTP_10,
    "1.1": Flavour.HTTP_11,
    "2": Flavour.HTTP_20,
    "2.0": Flavour.HTTP_20,
    "3": Flavour.HTTP_30,
    "3.0": Flavour.HTTP_30,
}


def get_http_flavour(
    protocol: str, policy: ProtocolFlavorPolicy = ProtocolFlavorPolicy.RELAXED
) -> str:
    """Map an HTTP version (``"1.1"``, ``"2"``, ``"HTTP/2.0"``) to its flavor constant.

    Raises:
        ProtocolNotRecognisedError: for unknown versions under the strict policy
    """
    normalized = protocol.strip().upper()
    if normalized.startswith("HTTP/"):
        normalized = normalized[len("HTTP/"):]
    flavour = _FLAVOURS.get(normalized)
    if flavour is None:
        if policy is ProtocolFlavorPolicy.STRICT:
            raise ProtocolNotRecognisedError(protocol)
        return Flavour.UNKNOWN
    return flavour


@dataclass(frozen=True)
class ResponseInfo:
    """Response metadata captured from the ASGI ``http.response.start`` message."""

    status_code: int
    headers: Headers

    @classmethod
    def from_message(cls, message: Message) -> "ResponseInfo":
        return cls(
            status_code=message["status"],
            headers=Headers(raw=list(message.get("headers", []))),
        )


class SpanEnricher:
    """Attach request/response metadata and end-user identity to spans."""

    def __init__(self, policy: ProtocolFlavorPolicy = ProtocolFlavorPolicy.RELAXED):
        self.policy = policy

    def enrich(self, span: trace.Span, obj: Any) -> None:
        """Tag ``span`` from a request, or from a response carrying ``headers``."""
        if isinstance(obj, Request):
            self.enrich_request(span, obj)
        elif hasattr(obj, "headers"):
            self.enrich_response(span, obj)

    def enrich_request(self, span: trace.Span, request: Request) -> None:
        scope = request.scope
        _set(span, Attr.HTTP_FLAVOR, get_http_flavour(scope.get("http_version", "1.1"), self.policy))
        _set(span, Attr.HTTP_SCHEME, request.url.scheme)
        _set(span, Attr.HTTP_CLIENT_IP, request.client.host if request.client else None)
        _set(span, Attr.HTTP_REQUEST_CONTENT_LENGTH, _content_length(request.headers))
        _set(span, Attr.HTTP_REQUEST_CONTENT_TYPE, request.headers.get("content-type"))

        user = scope.get("user")
        name = getattr(user, "display_name", None) if getattr(user, "is_authenticated", False) else None
        if name:
            _set(span, Attr.ENDUSER_ID, name)
            credentials = scope.get("auth")
            scopes = getattr(credentials, "scopes", None) or []
            _set(span, Attr.ENDUSER_SCOPE, ",".join(scopes))

    def enrich_response(self, span: trace.Span, response: Any) -> None:
        headers = response.headers
        _set(span, Attr.HTTP_RESPONSE_CONTENT_LENGTH, _content_length(headers))
        _set(span, Attr.HTTP_RESPONSE_CONTENT_TYPE, headers.get("content-type"))


class SpanEnrichmentMiddleware:
    """ASGI middleware enriching the active server span.

    Must sit inside the authentication middleware so the user is resolved,
    and inside the OpenTelemetry instrumentation so a server span is active.
    """

    def __init__(self, app: ASGIApp, enricher: SpanEnricher) -> None:
        self.app = app
        self.enricher = enricher

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        span = trace.get_current_span()
        if scope["type"] != "http" or not span.is_recording():
            await self.app(scope, receive, send)
            return

        self.enricher.enrich(span, Request(scope))

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                self.enricher.enrich(span, ResponseInfo.from_message(message))
            await send(message)

        await self.app(scope, receive, send_wrapper)


class Telemetry:
    """Tracing handle created at startup and shut down with the host.

    Args:
        options: Bound application options
        span_exporter: Optional extra exporter (tests use an in-memory one)
        set_global: Also install the provider as the global tracer provider,
            which third-party instrumentation without an explicit provider uses
    """

    def __init__(
        self,
        options: ApplicationOptions,
        span_exporter: Optional[SpanExporter] = None,
        set_global: bool = False,
    ) -> None:
        settings = options.open_telemetry
        policy = (
            ProtocolFlavorPolicy.STRICT
            if settings.strict_protocol_flavor
            else ProtocolFlavorPolicy.RELAXED
        )
        self.enricher = SpanEnricher(policy)
        self._instrument_redis = options.backend is StorageBackend.REDIS

        resource = Resource.create(
            {
                SERVICE_NAME: settings.service_name,
                SERVICE_VERSION: settings.service_version,
                Attr.DEPLOYMENT_ENVIRONMENT: options.environment,
                Attr.HOST_NAME: socket.gethostname(),
            }
        )
        self.tracer_provider = TracerProvider(resource=resource)

        console = settings.console_exporter
        if console is None:
            console = options.is_development
        if console:
            self.tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        if span_exporter is not None:
            self.tracer_provider.add_span_processor(SimpleSpanProcessor(span_exporter))

        if set_global:
            trace.set_tracer_provider(self.tracer_provider)

        logger.debug(
            "telemetry_configured",
            service_name=settings.service_name,
            protocol_policy=policy.value,
            console_exporter=console,
        )

    def get_tracer(self, name: str) -> trace.Tracer:
        return self.tracer_provider.get_tracer(name)

    def instrument(self, app: Any) -> None:
        """Instrument the FastAPI app (and redis-py when the redis backend is used)."""
        FastAPIInstrumentor.instrument_app(app, tracer_provider=self.tracer_provider)
        if self._instrument_redis:
            from opentelemetry.instrumentation.redis import RedisInstrumentor

            instrumentor = RedisInstrumentor()
            if not instrumentor.is_instrumented_by_opentelemetry:
                instrumentor.instrument(tracer_provider=self.tracer_provider)

    def shutdown(self) -> None:
        """Flush span processors and release the provider."""
        self.tracer_provider.shutdown()
        logger.debug("telemetry_shutdown")


def _set(span: trace.Span, key: str, value: Any) -> None:
    if value is not None:
        span.set_attribute(key, value)


def _content_length(headers: Any) -> Optional[int]:
    value = headers.get("content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)


__all__ = [
    "ProtocolFlavorPolicy",
    "ResponseInfo",
    "SpanEnricher",
    "SpanEnrichmentMiddleware",
    "Telemetry",
    "get_http_flavour",
]
