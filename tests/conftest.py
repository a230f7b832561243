"""
Global pytest configuration for apiforge.

Provides application factories bound to the packaged configuration and
enforces the Python version requirement.
"""

from __future__ import annotations

import sys
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from apiforge import create_app
from apiforge.config import load_configuration

_MIN_PY_VERSION = (3, 11)


def _verify_python_version() -> str:
    """Return the interpreter version string or exit if <3.11."""
    version_info = sys.version_info
    version_str = ".".join(map(str, version_info[:3]))
    if version_info < _MIN_PY_VERSION:
        pytest.exit(
            f"ERROR: pytest must run on Python 3.11+ (detected {version_str}).",
            returncode=1,
        )
    return version_str


def pytest_report_header(config: pytest.Config) -> str:
    version_str = _verify_python_version()
    return f"Python interpreter verified for pytest: {version_str}"


@pytest.fixture(scope="session", autouse=True)
def register_markers(pytestconfig: pytest.Config) -> None:
    """Register project markers to prevent unknown marker warnings."""
    markers = {
        "unit": "Unit tests that should execute quickly.",
        "integration": "Integration tests hitting multiple components.",
        "slow": "Slow or high-cost tests.",
    }
    for name, description in markers.items():
        pytestconfig.addinivalue_line("markers", f"{name}: {description}")


def settings(
    environment: str = "Test",
    overrides: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Packaged configuration for ``environment``, isolated from process env vars."""
    return load_configuration(environment=environment, overrides=overrides, environ={})


@pytest.fixture
def make_app() -> Callable[..., FastAPI]:
    def _make_app(
        environment: str = "Test",
        overrides: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> FastAPI:
        return create_app(settings(environment, overrides), environment=environment, **kwargs)

    return _make_app


@pytest.fixture
def make_client(make_app: Callable[..., FastAPI]) -> Iterator[Callable[..., TestClient]]:
    clients = []

    def _make_client(
        environment: str = "Test",
        overrides: Optional[Mapping[str, Any]] = None,
        base_url: str = "https://testserver",
        **kwargs: Any,
    ) -> TestClient:
        client = TestClient(make_app(environment, overrides, **kwargs), base_url=base_url)
        client.__enter__()
        clients.append(client)
        return client

    yield _make_client

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()
