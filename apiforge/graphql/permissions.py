"""Field permissions."""

from typing import Any

from strawberry.permission import BasePermission
from strawberry.types import Info


class IsAuthenticated(BasePermission):
    """Authenticated-user policy; always granted when authorization is disabled."""

    message = "The current user is not authorized to access this resource."
    error_extensions = {"code": "AUTH_NOT_AUTHENTICATED"}

    def has_permission(self, source: Any, info: Info, **kwargs: Any) -> bool:
        context = info.context
        if not context.services.authorization_enabled:
            return True
        return context.is_authenticated


__all__ = ["IsAuthenticated"]
