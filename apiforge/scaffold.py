"""
Starter project generator.

``generate_project`` renders a new service that runs on apiforge. Arguments
are ``key=value`` strings, mostly feature switches named in kebab case:

    cors=false  open-telemetry=false  graphql=false  title="Orders API"

The generated project contains:

- appsettings.json / appsettings.Development.json / appsettings.Test.json
- main.py exposing ``app`` for uvicorn
- tests/test_smoke.py booting the app under the Test environment
- README.md
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from textwrap import dedent
from typing import Any, Dict, Iterable, List, Mapping

from apiforge.config import DEFAULT_SETTINGS_DIR, SETTINGS_FILE
from apiforge.exceptions import ScaffoldError
from apiforge.observability.logging import get_logger
from apiforge.options import FeatureFlags

logger = get_logger(__name__)

# Argument name -> Features key
FEATURE_ARGUMENTS: Dict[str, str] = {
    "cors": "Cors",
    "response-compression": "ResponseCompression",
    "forwarded-headers": "ForwardedHeaders",
    "host-filtering": "HostFiltering",
    "https-everywhere": "HttpsEverywhere",
    "hsts-preload": "HstsPreload",
    "health-check": "HealthCheck",
    "versioning": "Versioning",
    "open-telemetry": "OpenTelemetry",
    "swagger": "Swagger",
    "authorization": "Authorization",
    "graphql": "GraphQL",
    "persisted-queries": "PersistedQueries",
    "subscriptions": "Subscriptions",
}

TEXT_ARGUMENTS = ("title", "description")

_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_.-]*$")
_TRUE = ("true", "yes", "1")
_FALSE = ("false", "no", "0")


def parse_arguments(arguments: Iterable[str]) -> Dict[str, str]:
    """Split ``key=value`` arguments; keys are case-insensitive.

    Raises:
        ScaffoldError: for malformed or unknown arguments
    """
    parsed: Dict[str, str] = {}
    for argument in arguments:
        key, sep, value = argument.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            raise ScaffoldError(f"Expected key=value, got {argument!r}")
        if key not in FEATURE_ARGUMENTS and key not in TEXT_ARGUMENTS:
            raise ScaffoldError(f"Unknown argument: {key}")
        parsed[key] = value.strip()
    return parsed


def resolve_features(arguments: Mapping[str, str]) -> Dict[str, bool]:
    """Feature flags for the generated configuration, defaults overridden by arguments."""
    features = FeatureFlags().model_dump(by_alias=True)
    for key, value in arguments.items():
        if key not in FEATURE_ARGUMENTS:
            continue
        lowered = value.lower()
        if lowered in _TRUE:
            features[FEATURE_ARGUMENTS[key]] = True
        elif lowered in _FALSE:
            features[FEATURE_ARGUMENTS[key]] = False
        else:
            raise ScaffoldError(f"Invalid boolean value for {key}: {value!r}")
    return features


def render_settings(features: Mapping[str, bool]) -> Dict[str, Any]:
    settings = _load_packaged(SETTINGS_FILE)
    settings["Features"] = dict(features)
    if not features["GraphQL"]:
        settings.pop("GraphQL", None)
    if not features["ResponseCompression"]:
        settings.pop("Compression", None)
    return settings


def render_main(title: str) -> str:
    return dedent(
        f'''\
        """
        Entry point for {title}.

        Run with:
            uvicorn main:app --reload
        """

        from pathlib import Path

        from dotenv import load_dotenv

        from apiforge import create_app

        load_dotenv()

        SETTINGS_DIR = Path(__file__).parent

        app = create_app(settings_dir=str(SETTINGS_DIR))
        '''
    )


def render_smoke_test(features: Mapping[str, bool]) -> str:
    checks: List[str] = []
    if features["HealthCheck"]:
        checks.append(
            dedent(
                '''
                def test_status_self_is_alive(client):
                    response = client.get("/status/self")
                    assert response.status_code == 200
                    assert response.json()["status"] == "alive"
                '''
            )
        )
    if features["GraphQL"]:
        checks.append(
            dedent(
                '''
                def test_graphql_lists_droids(client):
                    response = client.post("/graphql", json={"query": "{ droids { nodes { name } } }"})
                    assert response.status_code == 200
                    names = [node["name"] for node in response.json()["data"]["droids"]["nodes"]]
                    assert "R2-D2" in names
                '''
            )
        )
    checks.append(
        dedent(
            '''
            def test_droids_endpoint(client):
                response = client.get("/droids")
                assert response.status_code == 200
                assert len(response.json()) >= 1
            '''
        )
    )
    base_url = "https://testserver" if features["HttpsEverywhere"] else "http://testserver"
    header = dedent(
        f'''\
        """Smoke tests booting the service under the Test environment."""

        from pathlib import Path

        import pytest
        from fastapi.testclient import TestClient

        from apiforge import create_app

        SETTINGS_DIR = Path(__file__).resolve().parent.parent


        @pytest.fixture
        def client():
            app = create_app(settings_dir=str(SETTINGS_DIR), environment="Test")
            with TestClient(app, base_url="{base_url}") as test_client:
                yield test_client
        '''
    )
    return header + "".join("\n" + check for check in checks)


def render_readme(name: str, title: str, description: str, features: Mapping[str, bool]) -> str:
    enabled = [f"- {key}" for key, value in features.items() if value] or ["- (none)"]
    return (
        f"# {title}\n\n"
        f"{description}\n\n"
        "## Running\n\n"
        "```bash\n"
        "pip install apiforge\n"
        "APIFORGE_ENVIRONMENT=Development uvicorn main:app --reload\n"
        "```\n\n"
        "## Testing\n\n"
        "```bash\n"
        "pytest\n"
        "```\n\n"
        "## Enabled features\n\n" + "\n".join(enabled) + "\n"
    )


def generate_project(output_dir: Path | str, name: str, arguments: Iterable[str] = ()) -> Path:
    """Render a starter project into ``output_dir / name``.

    Args:
        output_dir: Parent directory of the new project
        name: Project name, also used as the directory name
        arguments: ``key=value`` template arguments

    Returns:
        Path of the generated project directory

    Raises:
        ScaffoldError: for an invalid name or arguments, or an existing non-empty target
    """
    if not _NAME_PATTERN.match(name):
        raise ScaffoldError(f"Invalid project name: {name!r}")

    parsed = parse_arguments(arguments)
    features = resolve_features(parsed)
    title = parsed.get("title") or name
    description = parsed.get("description") or f"{title} service built on apiforge."

    project_dir = Path(output_dir) / name
    if project_dir.exists() and any(project_dir.iterdir()):
        raise ScaffoldError(f"Target directory is not empty: {project_dir}")

    files = {
        SETTINGS_FILE: _dump_json(render_settings(features)),
        "appsettings.Development.json": _dump_json(_load_packaged("appsettings.Development.json")),
        "appsettings.Test.json": _dump_json(_load_packaged("appsettings.Test.json")),
        "main.py": render_main(title),
        "tests/__init__.py": "",
        "tests/test_smoke.py": render_smoke_test(features),
        "README.md": render_readme(name, title, description, features),
    }
    for relative_path, content in files.items():
        path = project_dir / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    logger.info(
        "project_generated",
        name=name,
        path=str(project_dir),
        disabled_features=[key for key, value in features.items() if not value],
    )
    return project_dir


def _load_packaged(filename: str) -> Dict[str, Any]:
    with (DEFAULT_SETTINGS_DIR / filename).open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _dump_json(document: Mapping[str, Any]) -> str:
    return json.dumps(document, indent=2) + "\n"


__all__ = [
    "FEATURE_ARGUMENTS",
    "generate_project",
    "parse_arguments",
    "resolve_features",
]
