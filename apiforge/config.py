"""
Configuration loading and options binding for apiforge.

Configuration values are resolved using the following precedence:

1. Explicit ``overrides`` passed to `load_configuration`
2. Environment variables (e.g. ``APIFORGE_GraphQL__MaxAllowedComplexity=50``)
3. ``appsettings.{Environment}.json`` next to the base document
4. ``appsettings.json``

The merged document is then bound into frozen options records by
`bind_application_options`. Every failure raised here is fatal: the host must
not start with missing or invalid configuration.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from apiforge.constants import EnvironmentName
from apiforge.exceptions import ConfigError, MissingSectionError, OptionsValidationError
from apiforge.options import (
    ApplicationOptions,
    AuthenticationOptions,
    CacheProfileOptions,
    CompressionOptions,
    FeatureFlags,
    ForwardedHeadersOptions,
    GraphQLOptions,
    HostFilteringOptions,
    HostOptions,
    LoggingOptions,
    OpenTelemetryOptions,
    RedisOptions,
    ServerOptions,
    StorageBackend,
    StorageOptions,
)

__all__ = [
    "ENVIRONMENT_VARIABLE",
    "ENV_PREFIX",
    "OptionsRegistry",
    "bind_application_options",
    "bind_section",
    "build_registry",
    "load_configuration",
    "options_dependency",
    "resolve_environment",
]


ENV_PREFIX = "APIFORGE_"
ENVIRONMENT_VARIABLE = "APIFORGE_ENVIRONMENT"
SETTINGS_FILE = "appsettings.json"
DEFAULT_SETTINGS_DIR = Path(__file__).parent

T = TypeVar("T", bound=BaseModel)


def resolve_environment(environment: Optional[str] = None) -> str:
    """Return the host environment name, falling back to ``APIFORGE_ENVIRONMENT``."""

    if environment:
        return environment
    return os.getenv(ENVIRONMENT_VARIABLE) or EnvironmentName.PRODUCTION.value


def load_configuration(
    settings_dir: Optional[Path | str] = None,
    environment: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Load the hierarchical configuration document.

    Args:
        settings_dir: Directory holding ``appsettings*.json`` (defaults to the
            documents packaged with apiforge)
        environment: Environment name used to pick the overlay document
        overrides: Mapping merged last, mainly for tests
        environ: Environment variables to read (defaults to ``os.environ``)

    Returns:
        The merged configuration document.

    Raises:
        ConfigError: if the base document is missing or a document is not valid JSON.
    """

    directory = Path(settings_dir) if settings_dir else DEFAULT_SETTINGS_DIR
    environment = resolve_environment(environment)

    base_path = directory / SETTINGS_FILE
    if not base_path.exists():
        raise ConfigError(f"Configuration file not found: {base_path}")

    document = _load_json(base_path)

    overlay_path = directory / f"appsettings.{environment}.json"
    if overlay_path.exists():
        document = _deep_merge(document, _load_json(overlay_path))

    document = _apply_environment_overrides(
        document, os.environ if environ is None else environ
    )

    if overrides:
        document = _deep_merge(document, dict(overrides))

    return document


def bind_section(
    configuration: Mapping[str, Any],
    name: str,
    model: Type[T],
    required: bool = True,
) -> Optional[T]:
    """
    Bind and validate one top-level section.

    Args:
        configuration: Merged configuration document
        name: Section key, matched exactly (e.g. ``"CacheProfiles"``)
        model: Options record type to bind into
        required: Whether absence of the section is an error

    Returns:
        The validated record, or None when an optional section is absent.

    Raises:
        MissingSectionError: if a required section is absent
        OptionsValidationError: with every violated constraint of the section
    """

    raw = configuration.get(name)
    if raw is None:
        if required:
            raise MissingSectionError(name)
        return None

    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise OptionsValidationError(name, _format_errors(name, exc)) from exc


def bind_application_options(
    configuration: Mapping[str, Any],
    environment: Optional[str] = None,
) -> ApplicationOptions:
    """
    Bind every section required by the enabled features.

    Failures of all sections are collected and raised together so that a
    misconfigured host reports every problem at once.

    Raises:
        MissingSectionError: if exactly one required section is missing and
            nothing else failed
        OptionsValidationError: aggregating all other failures
    """

    environment = resolve_environment(environment)
    errors: List[str] = []
    missing: List[str] = []
    sections: Dict[str, Any] = {}

    def _bind(key: str, field: str, model: Type[BaseModel], required: bool = True) -> None:
        try:
            value = bind_section(configuration, key, model, required=required)
        except MissingSectionError as exc:
            missing.append(exc.section)
            errors.append(str(exc))
            return
        except OptionsValidationError as exc:
            errors.extend(exc.errors)
            return
        if value is not None:
            sections[field] = value

    _bind("Features", "features", FeatureFlags, required=False)
    _bind("Storage", "storage", StorageOptions, required=False)
    _bind("Authentication", "authentication", AuthenticationOptions, required=False)
    _bind("Logging", "logging", LoggingOptions, required=False)
    features: FeatureFlags = sections.get("features", FeatureFlags())
    storage: StorageOptions = sections.get("storage", StorageOptions())

    _bind("CacheProfiles", "cache_profiles", CacheProfileOptions)
    _bind("Host", "host", HostOptions)
    _bind("Kestrel", "kestrel", ServerOptions)

    if features.response_compression:
        _bind("Compression", "compression", CompressionOptions)
    if features.forwarded_headers:
        _bind("ForwardedHeaders", "forwarded_headers", ForwardedHeadersOptions)
    elif features.host_filtering:
        _bind("HostFiltering", "host_filtering", HostFilteringOptions)
    if features.open_telemetry:
        _bind("OpenTelemetry", "open_telemetry", OpenTelemetryOptions, required=False)
    if features.graphql:
        _bind("GraphQL", "graphql", GraphQLOptions)

    backend = storage.backend
    if backend is None:
        is_test = environment == EnvironmentName.TEST.value
        backend = StorageBackend.IN_MEMORY if is_test else StorageBackend.REDIS
    if backend is StorageBackend.REDIS:
        _bind("Redis", "redis", RedisOptions)

    if len(missing) == 1 and len(errors) == 1:
        raise MissingSectionError(missing[0])
    if errors:
        raise OptionsValidationError("*", errors)

    return ApplicationOptions(environment=environment, **sections)


class OptionsRegistry:
    """
    Process-wide lookup of validated options records by type.

    Records are registered once during composition and read by request
    handlers through `options_dependency`.
    """

    def __init__(self) -> None:
        self._records: Dict[type, BaseModel] = {}

    def register(self, record: BaseModel) -> None:
        if type(record) in self._records:
            raise ConfigError(f"Options already registered: {type(record).__name__}")
        self._records[type(record)] = record

    def get(self, model: Type[T]) -> T:
        try:
            return self._records[model]  # type: ignore[return-value]
        except KeyError as exc:
            raise ConfigError(f"Options not registered: {model.__name__}") from exc

    def __contains__(self, model: type) -> bool:
        return model in self._records


def build_registry(options: ApplicationOptions) -> OptionsRegistry:
    """Register the root record and every bound section."""

    registry = OptionsRegistry()
    registry.register(options)
    for record in (
        options.features,
        options.storage,
        options.authentication,
        options.logging,
        options.open_telemetry,
        options.cache_profiles,
        options.host,
        options.kestrel,
        options.compression,
        options.forwarded_headers,
        options.host_filtering,
        options.redis,
        options.graphql,
    ):
        if record is not None:
            registry.register(record)
    if options.graphql is not None:
        registry.register(options.graphql.paging)
        registry.register(options.graphql.request)
    return registry


def options_dependency(model: Type[T]) -> Callable[[Request], T]:
    """Build a FastAPI dependency returning the registered record of ``model``."""

    def _dependency(request: Request) -> T:
        registry: OptionsRegistry = request.app.state.options_registry
        return registry.get(model)

    _dependency.__name__ = f"get_{model.__name__}"
    return _dependency


def _load_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be an object: {path}")
    return data


def _deep_merge(base: Dict[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``overlay`` into a copy of ``base``; nested objects merge, everything else replaces."""

    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_environment_overrides(
    document: Dict[str, Any], environ: Mapping[str, str]
) -> Dict[str, Any]:
    """Apply ``APIFORGE_Section__Key=value`` variables; key matching is case-insensitive."""

    result = document
    for variable, value in environ.items():
        if not variable.startswith(ENV_PREFIX) or variable == ENVIRONMENT_VARIABLE:
            continue
        path = [part for part in variable[len(ENV_PREFIX):].split("__") if part]
        if not path:
            continue
        result = _deep_merge(result, _nest(result, path, value))
    return result


def _nest(document: Mapping[str, Any], path: List[str], value: Any) -> Dict[str, Any]:
    key = _match_key(document, path[0])
    if len(path) == 1:
        return {key: value}
    child = document.get(key)
    return {key: _nest(child if isinstance(child, Mapping) else {}, path[1:], value)}


def _match_key(document: Mapping[str, Any], key: str) -> str:
    for existing in document:
        if existing.lower() == key.lower():
            return existing
    return key


def _format_errors(section: str, exc: ValidationError) -> List[str]:
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        prefix = f"{section}.{location}" if location else section
        lines.append(f"{prefix}: {error['msg']}")
    return lines
