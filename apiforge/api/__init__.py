"""HTTP API routers for apiforge."""

from apiforge.api import status, v1

__all__ = ["status", "v1"]
