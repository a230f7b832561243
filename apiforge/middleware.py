"""
HTTP middleware composed into the application.

Request-scoped concerns wired by ``apiforge.services``:

- log_requests: correlation IDs, structured request logs and HTTP metrics
- global_exception_handler: JSON 500 for unhandled exceptions
- LowercasePathMiddleware: case-insensitive routing
- RequestLimitsMiddleware: body size and header count limits
- ResponseCompressionMiddleware: gzip limited to compressible MIME types
- StrictTransportSecurityMiddleware: HSTS on HTTPS responses
"""

from __future__ import annotations

import gzip
import time
from typing import Callable, Iterable, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from apiforge.constants import HeaderName
from apiforge.observability.logging import (
    clear_correlation_id,
    get_logger,
    set_correlation_id,
)
from apiforge.observability.metrics import increment_counter, record_histogram

logger = get_logger(__name__)

# Compressed by default in addition to the configured MIME types.
DEFAULT_COMPRESSION_MIME_TYPES = (
    "text/plain",
    "text/css",
    "application/javascript",
    "text/html",
    "application/xml",
    "text/xml",
    "application/json",
    "text/json",
    "application/wasm",
)


async def log_requests(request: Request, call_next: Callable):
    correlation_id = set_correlation_id(request.headers.get(HeaderName.CORRELATION_ID))
    start_time = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        raise
    else:
        duration = time.perf_counter() - start_time
        route = _route_template(request)
        increment_counter(
            "http_requests_total",
            labels={
                "method": request.method,
                "route": route,
                "status_code": str(response.status_code),
            },
        )
        record_histogram(
            "http_request_duration_seconds",
            duration,
            labels={"method": request.method, "route": route},
        )
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        response.headers[HeaderName.CORRELATION_ID] = correlation_id
        return response
    finally:
        clear_correlation_id()


async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class LowercasePathMiddleware:
    """Lowercase the request path before routing."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] in ("http", "websocket"):
            path = scope["path"]
            lowered = path.lower()
            if lowered != path:
                scope = {**scope, "path": lowered}
        await self.app(scope, receive, send)


class _BodyTooLarge(Exception):
    def __init__(self, received: int) -> None:
        super().__init__(f"Request body exceeded {received} bytes")
        self.received = received


class RequestLimitsMiddleware:
    """Reject oversized requests before they reach the application.

    The body limit applies to the declared ``Content-Length`` and to the bytes
    actually received, so chunked uploads are cut off too.

    Args:
        max_body_size: Largest accepted body in bytes; None disables the check
        max_header_count: Largest accepted number of request headers
    """

    def __init__(
        self,
        app: ASGIApp,
        max_body_size: Optional[int] = None,
        max_header_count: Optional[int] = None,
    ) -> None:
        self.app = app
        self.max_body_size = max_body_size
        self.max_header_count = max_header_count

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if self.max_header_count is not None and len(scope["headers"]) > self.max_header_count:
            logger.warning("request_rejected", reason="header_count", count=len(scope["headers"]))
            response = JSONResponse(
                status_code=431, content={"detail": "Request header fields too large"}
            )
            await response(scope, receive, send)
            return

        if self.max_body_size is None:
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length")
        if length is not None and length.isdigit() and int(length) > self.max_body_size:
            await self._reject(scope, receive, send, int(length))
            return

        max_body_size = self.max_body_size
        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > max_body_size:
                    raise _BodyTooLarge(received)
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except _BodyTooLarge as exc:
            if response_started:
                raise
            await self._reject(scope, receive, send, exc.received)

    async def _reject(self, scope: Scope, receive: Receive, send: Send, size: int) -> None:
        logger.warning("request_rejected", reason="body_size", content_length=size)
        response = JSONResponse(status_code=413, content={"detail": "Request body too large"})
        await response(scope, receive, send)


class ResponseCompressionMiddleware:
    """Gzip responses whose content type is compressible.

    Args:
        mime_types: Extra compressible types added to the defaults
        minimum_size: Smallest body, in bytes, worth compressing
    """

    def __init__(
        self,
        app: ASGIApp,
        mime_types: Iterable[str] = (),
        minimum_size: int = 500,
        compresslevel: int = 6,
    ) -> None:
        self.app = app
        self.mime_types = frozenset(
            t.lower() for t in (*DEFAULT_COMPRESSION_MIME_TYPES, *mime_types)
        )
        self.minimum_size = minimum_size
        self.compresslevel = compresslevel

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        accept_encoding = Headers(scope=scope).get("accept-encoding", "")
        if "gzip" not in accept_encoding.lower():
            await self.app(scope, receive, send)
            return
        responder = _GzipResponder(send, self.mime_types, self.minimum_size, self.compresslevel)
        await self.app(scope, receive, responder.send)


class _GzipResponder:
    def __init__(self, send: Send, mime_types: frozenset, minimum_size: int, compresslevel: int):
        self._send = send
        self._mime_types = mime_types
        self._minimum_size = minimum_size
        self._compresslevel = compresslevel
        self._start: Optional[Message] = None
        self._compressible = False
        self._chunks: List[bytes] = []

    async def send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            headers = Headers(raw=message.get("headers", []))
            content_type = headers.get("content-type", "").split(";")[0].strip().lower()
            self._compressible = (
                content_type in self._mime_types and "content-encoding" not in headers
            )
            if self._compressible:
                self._start = message
            else:
                await self._send(message)
            return

        if message["type"] != "http.response.body" or not self._compressible:
            await self._send(message)
            return

        self._chunks.append(message.get("body", b""))
        if message.get("more_body", False):
            return

        body = b"".join(self._chunks)
        start = self._start
        headers = MutableHeaders(raw=list(start.get("headers", [])))
        if len(body) >= self._minimum_size:
            body = gzip.compress(body, compresslevel=self._compresslevel)
            headers["Content-Encoding"] = "gzip"
            headers["Content-Length"] = str(len(body))
            headers.add_vary_header("Accept-Encoding")
        await self._send({**start, "headers": headers.raw})
        await self._send({"type": "http.response.body", "body": body, "more_body": False})


class StrictTransportSecurityMiddleware:
    """Add ``Strict-Transport-Security`` to HTTPS responses."""

    def __init__(self, app: ASGIApp, preload: bool = False, max_age: int = 31536000) -> None:
        self.app = app
        value = f"max-age={max_age}; includeSubDomains"
        self.header_value = f"{value}; preload" if preload else value

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("scheme") != "https":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers[HeaderName.STRICT_TRANSPORT_SECURITY] = self.header_value
            await send(message)

        await self.app(scope, receive, send_wrapper)


__all__ = [
    "DEFAULT_COMPRESSION_MIME_TYPES",
    "LowercasePathMiddleware",
    "RequestLimitsMiddleware",
    "ResponseCompressionMiddleware",
    "StrictTransportSecurityMiddleware",
    "global_exception_handler",
    "log_requests",
]
