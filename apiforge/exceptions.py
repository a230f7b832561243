"""
apiforge - Custom Exceptions

Exception hierarchy for bootstrap failures. Configuration errors are raised
while the application is being composed and are always fatal: the host must
not start with partial configuration.
"""

from typing import List


class ApiForgeError(Exception):
    """
    Base exception for all apiforge errors.

    Allows callers to catch every bootstrap failure with a single handler
    while still exposing specific subclasses for precise handling.
    """

    pass


class ConfigError(ApiForgeError):
    """Raised when configuration cannot be loaded or validated."""


class MissingSectionError(ConfigError):
    """
    Raised when a required configuration section is absent.

    Attributes:
        section: Name of the missing top-level section (e.g. ``"Redis"``)

    Example:
        >>> raise MissingSectionError("Kestrel")
    """

    def __init__(self, section: str):
        super().__init__(f"Required configuration section '{section}' is missing")
        self.section = section


class OptionsValidationError(ConfigError):
    """
    Raised when one or more options records violate their constraints.

    Attributes:
        section: Section that failed, or ``"*"`` when several sections failed
        errors: Every violated constraint, one human-readable line each

    Example:
        >>> raise OptionsValidationError(
        ...     section="GraphQL",
        ...     errors=["GraphQL.MaxAllowedComplexity: Input should be greater than or equal to 1"],
        ... )
    """

    def __init__(self, section: str, errors: List[str]):
        joined = "; ".join(errors)
        super().__init__(f"Validation failed for '{section}': {joined}")
        self.section = section
        self.errors = list(errors)


class ProtocolNotRecognisedError(ApiForgeError):
    """Raised by the strict span enricher for an unknown HTTP protocol version."""

    def __init__(self, protocol: str):
        super().__init__(f"Protocol {protocol} not recognised.")
        self.protocol = protocol


class ScaffoldError(ApiForgeError):
    """Raised when a project cannot be generated from the given arguments."""


__all__ = [
    "ApiForgeError",
    "ConfigError",
    "MissingSectionError",
    "OptionsValidationError",
    "ProtocolNotRecognisedError",
    "ScaffoldError",
]
