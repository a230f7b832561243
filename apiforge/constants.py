"""Well-known names shared across the bootstrap code."""

from enum import Enum


class EnvironmentName(str, Enum):
    """Host environment names."""

    DEVELOPMENT = "Development"
    TEST = "Test"
    PRODUCTION = "Production"


class OpenTelemetryAttributeName:
    """Span and resource attribute keys (OpenTelemetry semantic conventions)."""

    DEPLOYMENT_ENVIRONMENT = "deployment.environment"
    HOST_NAME = "host.name"

    HTTP_FLAVOR = "http.flavor"
    HTTP_SCHEME = "http.scheme"
    HTTP_CLIENT_IP = "http.client_ip"
    HTTP_REQUEST_CONTENT_LENGTH = "http.request_content_length"
    HTTP_REQUEST_CONTENT_TYPE = "http.request_content_type"
    HTTP_RESPONSE_CONTENT_LENGTH = "http.response_content_length"
    HTTP_RESPONSE_CONTENT_TYPE = "http.response_content_type"

    ENDUSER_ID = "enduser.id"
    ENDUSER_SCOPE = "enduser.scope"


class OpenTelemetryHttpFlavour:
    HTTP_10 = "1.0"
    HTTP_11 = "1.1"
    HTTP_20 = "2.0"
    HTTP_30 = "3.0"
    UNKNOWN = "unknown"


class HeaderName:
    API_SUPPORTED_VERSIONS = "api-supported-versions"
    CORRELATION_ID = "X-Correlation-ID"
    STRICT_TRANSPORT_SECURITY = "Strict-Transport-Security"
    FORWARDED_USER = "X-Forwarded-User"
    FORWARDED_SCOPES = "X-Forwarded-Scopes"


__all__ = [
    "EnvironmentName",
    "HeaderName",
    "OpenTelemetryAttributeName",
    "OpenTelemetryHttpFlavour",
]
