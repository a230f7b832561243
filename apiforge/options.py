"""
Strongly-typed options records for apiforge.

Each record binds one section of the configuration document. Keys in the
document are PascalCase (``MaxAllowedComplexity``) while attributes are
snake_case (``max_allowed_complexity``). Records are frozen: they are bound
and validated once at startup and only read afterwards.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator
from pydantic.alias_generators import to_pascal

from apiforge import __version__
from apiforge.constants import EnvironmentName

__all__ = [
    "ApplicationOptions",
    "AuthenticationOptions",
    "CacheProfile",
    "CacheProfileOptions",
    "CompressionOptions",
    "FeatureFlags",
    "ForwardedHeadersOptions",
    "GraphQLOptions",
    "HostFilteringOptions",
    "HostOptions",
    "LoggingOptions",
    "OpenTelemetryOptions",
    "PagingOptions",
    "RedisOptions",
    "RequestOptions",
    "ServerLimitsOptions",
    "ServerOptions",
    "StorageBackend",
    "StorageOptions",
]


class OptionsModel(BaseModel):
    """Base for options records bound from PascalCase configuration keys."""

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class CacheProfile(OptionsModel):
    """Named HTTP caching policy applied to responses."""

    duration: int = Field(0, ge=0, description="max-age in seconds")
    location: Literal["Any", "Client", "None"] = "Any"
    no_store: bool = False
    vary_by_header: Optional[str] = None

    def cache_control(self) -> str:
        """Render the ``Cache-Control`` header value for this profile."""

        if self.no_store:
            return "no-store"
        if self.location == "None":
            return "no-cache"
        visibility = "public" if self.location == "Any" else "private"
        return f"{visibility},max-age={self.duration}"


class CacheProfileOptions(RootModel[Dict[str, CacheProfile]]):
    model_config = ConfigDict(frozen=True)

    def get(self, name: str) -> Optional[CacheProfile]:
        return self.root.get(name)

    @property
    def names(self) -> List[str]:
        return sorted(self.root)


class CompressionOptions(OptionsModel):
    """Response compression settings.

    ``mime_types`` extends the built-in list of compressible content types.
    """

    mime_types: List[str] = Field(default_factory=list)
    minimum_size: int = Field(500, ge=0)


class ForwardedHeadersOptions(OptionsModel):
    forwarded_headers: str = "XForwardedFor,XForwardedProto"
    forward_limit: Optional[int] = Field(1, ge=1)
    # Known networks and proxies are cleared: every upstream proxy is trusted.
    trusted_proxies: List[str] = Field(default_factory=lambda: ["*"])


class HostFilteringOptions(OptionsModel):
    allowed_hosts: List[str] = Field(..., min_length=1)


class HostOptions(OptionsModel):
    shutdown_timeout: timedelta = timedelta(seconds=10)


class ServerLimitsOptions(OptionsModel):
    max_request_body_size: Optional[int] = Field(10 * 1024 * 1024, ge=0)
    max_request_header_count: int = Field(100, ge=1)
    keep_alive_timeout: timedelta = timedelta(seconds=120)
    max_concurrent_connections: Optional[int] = Field(None, ge=1)


class ServerOptions(OptionsModel):
    """Web server transport settings (the ``Kestrel`` section)."""

    add_server_header: bool = False
    limits: ServerLimitsOptions = Field(default_factory=ServerLimitsOptions)


class RedisOptions(OptionsModel):
    connection_string: str = Field(..., min_length=1)
    instance_name: str = "apiforge:"


class PagingOptions(OptionsModel):
    default_page_size: int = Field(10, ge=1)
    max_page_size: int = Field(100, ge=1)
    include_total_count: bool = True

    @model_validator(mode="after")
    def _default_within_max(self) -> "PagingOptions":
        if self.default_page_size > self.max_page_size:
            raise ValueError("DefaultPageSize must not exceed MaxPageSize")
        return self


class RequestOptions(OptionsModel):
    execution_timeout: timedelta = timedelta(seconds=30)
    include_exception_details: bool = False

    @field_validator("execution_timeout")
    @classmethod
    def _positive_timeout(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("ExecutionTimeout must be positive")
        return value


class GraphQLOptions(OptionsModel):
    max_allowed_complexity: int = Field(..., ge=1)
    max_allowed_execution_depth: int = Field(..., ge=1)
    enable_apollo_tracing: bool = False
    paging: PagingOptions = Field(default_factory=PagingOptions)
    request: RequestOptions = Field(default_factory=RequestOptions)


class FeatureFlags(OptionsModel):
    """Runtime switches selecting which capabilities are composed."""

    cors: bool = True
    response_compression: bool = True
    forwarded_headers: bool = True
    host_filtering: bool = False
    https_everywhere: bool = True
    hsts_preload: bool = False
    health_check: bool = True
    versioning: bool = True
    open_telemetry: bool = True
    swagger: bool = True
    authorization: bool = True
    graphql: bool = Field(True, alias="GraphQL")
    persisted_queries: bool = True
    subscriptions: bool = True


class StorageBackend(str, Enum):
    IN_MEMORY = "InMemory"
    REDIS = "Redis"


class StorageOptions(OptionsModel):
    # None selects InMemory for the Test environment and Redis otherwise.
    backend: Optional[StorageBackend] = None


class AuthenticationOptions(OptionsModel):
    # Honour X-Forwarded-User only behind a gateway that strips it from client requests.
    trust_forwarded_identity: bool = False


class OpenTelemetryOptions(OptionsModel):
    service_name: str = Field("apiforge", min_length=1)
    service_version: str = __version__
    strict_protocol_flavor: bool = False
    console_exporter: Optional[bool] = None


class LoggingOptions(OptionsModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        if isinstance(value, str):
            value = value.upper()
            return {"INFORMATION": "INFO", "TRACE": "DEBUG"}.get(value, value)
        return value


class ApplicationOptions(OptionsModel):
    """Root options record holding every bound section."""

    environment: str = EnvironmentName.PRODUCTION.value
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    storage: StorageOptions = Field(default_factory=StorageOptions)
    authentication: AuthenticationOptions = Field(default_factory=AuthenticationOptions)
    logging: LoggingOptions = Field(default_factory=LoggingOptions)
    open_telemetry: OpenTelemetryOptions = Field(default_factory=OpenTelemetryOptions)
    cache_profiles: CacheProfileOptions = Field(default_factory=lambda: CacheProfileOptions({}))
    host: HostOptions = Field(default_factory=HostOptions)
    kestrel: ServerOptions = Field(default_factory=ServerOptions)
    compression: Optional[CompressionOptions] = None
    forwarded_headers: Optional[ForwardedHeadersOptions] = None
    host_filtering: Optional[HostFilteringOptions] = None
    redis: Optional[RedisOptions] = None
    graphql: Optional[GraphQLOptions] = Field(None, alias="GraphQL")

    @property
    def is_test(self) -> bool:
        return self.environment == EnvironmentName.TEST.value

    @property
    def is_development(self) -> bool:
        return self.environment == EnvironmentName.DEVELOPMENT.value

    @property
    def backend(self) -> StorageBackend:
        """Storage backend, defaulting to in-memory for the Test environment."""

        if self.storage.backend is not None:
            return self.storage.backend
        return StorageBackend.IN_MEMORY if self.is_test else StorageBackend.REDIS
