"""
apiforge - service bootstrap kit.

Turns a hierarchical configuration document and runtime feature flags into a
FastAPI application with a versioned REST API, a GraphQL server, health and
metrics endpoints and OpenTelemetry tracing.
"""

__version__ = "0.1.0"

from apiforge.app import create_app  # noqa: E402

__all__ = ["__version__", "create_app"]
