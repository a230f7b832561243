"""Tests for the starter project generator and the command line."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from apiforge import create_app
from apiforge.cli import main
from apiforge.exceptions import ScaffoldError
from apiforge.scaffold import generate_project, parse_arguments, resolve_features

REPOSITORY_ROOT = Path(__file__).resolve().parent.parent


@pytest.mark.unit
class TestArguments:
    def test_parse(self):
        parsed = parse_arguments(["cors=false", "Title=Orders API", "graphql = no"])

        assert parsed == {"cors": "false", "title": "Orders API", "graphql": "no"}

    @pytest.mark.parametrize("argument", ["cors", "=true", "unknown=true"])
    def test_invalid_arguments(self, argument):
        with pytest.raises(ScaffoldError):
            parse_arguments([argument])

    @pytest.mark.parametrize(
        "value,expected",
        [("true", True), ("YES", True), ("1", True), ("false", False), ("no", False), ("0", False)],
    )
    def test_boolean_values(self, value, expected):
        features = resolve_features({"hsts-preload": value})

        assert features["HstsPreload"] is expected

    def test_defaults(self):
        features = resolve_features({})

        assert features["GraphQL"] is True
        assert features["HostFiltering"] is False

    def test_invalid_boolean(self):
        with pytest.raises(ScaffoldError, match="Invalid boolean value for cors"):
            resolve_features({"cors": "maybe"})


@pytest.mark.integration
class TestGenerateProject:
    def test_generated_files(self, tmp_path):
        project = generate_project(tmp_path, "orders", ["title=Orders API"])

        assert project == tmp_path / "orders"
        for name in (
            "appsettings.json",
            "appsettings.Development.json",
            "appsettings.Test.json",
            "main.py",
            "tests/__init__.py",
            "tests/test_smoke.py",
            "README.md",
        ):
            assert (project / name).is_file(), name
        assert (project / "README.md").read_text().startswith("# Orders API\n")
        compile((project / "main.py").read_text(), "main.py", "exec")
        compile((project / "tests/test_smoke.py").read_text(), "test_smoke.py", "exec")

    def test_disabled_features_drop_sections(self, tmp_path):
        project = generate_project(
            tmp_path, "orders", ["graphql=false", "response-compression=false", "cors=false"]
        )

        document = json.loads((project / "appsettings.json").read_text())
        assert document["Features"]["GraphQL"] is False
        assert document["Features"]["Cors"] is False
        assert "GraphQL" not in document
        assert "Compression" not in document
        smoke_test = (project / "tests/test_smoke.py").read_text()
        assert "test_graphql_lists_droids" not in smoke_test

    def test_generated_project_boots(self, tmp_path):
        project = generate_project(tmp_path, "orders", ["graphql=false", "https-everywhere=false"])

        app = create_app(settings_dir=str(project), environment="Test")
        with TestClient(app, base_url="http://testserver") as client:
            assert client.get("/droids").status_code == 200
            assert client.get("/status/self").status_code == 200
            assert client.post("/graphql", json={"query": "{ __typename }"}).status_code == 404

    def test_invalid_name(self, tmp_path):
        with pytest.raises(ScaffoldError, match="Invalid project name"):
            generate_project(tmp_path, "1orders")

    def test_non_empty_target(self, tmp_path):
        (tmp_path / "orders").mkdir()
        (tmp_path / "orders" / "keep.txt").write_text("x")

        with pytest.raises(ScaffoldError, match="not empty"):
            generate_project(tmp_path, "orders")


@pytest.mark.integration
class TestCli:
    def test_new(self, tmp_path, capsys):
        exit_code = main(["new", "orders", "-o", str(tmp_path), "swagger=false"])

        assert exit_code == 0
        document = json.loads((tmp_path / "orders" / "appsettings.json").read_text())
        assert document["Features"]["Swagger"] is False
        assert "Created" in capsys.readouterr().out

    def test_new_with_invalid_argument(self, tmp_path, capsys):
        exit_code = main(["new", "orders", "-o", str(tmp_path), "bogus=1"])

        assert exit_code == 1
        assert "Unknown argument: bogus" in capsys.readouterr().err
        assert not (tmp_path / "orders").exists()

    def test_new_with_arguments_before_output(self, tmp_path):
        exit_code = main(["new", "orders", "cors=false", "-o", str(tmp_path), "graphql=false"])

        assert exit_code == 0
        document = json.loads((tmp_path / "orders" / "appsettings.json").read_text())
        assert document["Features"]["Cors"] is False
        assert document["Features"]["GraphQL"] is False

    def test_unknown_option(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["new", "orders", "-o", str(tmp_path), "--bogus"])

        assert exc_info.value.code == 2


@pytest.mark.slow
@pytest.mark.integration
@pytest.mark.parametrize(
    "arguments",
    [
        [],
        ["graphql=false"],
        ["https-everywhere=false"],
        ["open-telemetry=false"],
    ],
    ids=["defaults", "no-graphql", "no-https", "no-open-telemetry"],
)
def test_generated_project_tests_pass(tmp_path, arguments):
    project = generate_project(tmp_path, "orders", arguments)
    environ = {key: value for key, value in os.environ.items() if not key.startswith("APIFORGE_")}
    environ["PYTHONPATH"] = os.pathsep.join(
        filter(None, [str(REPOSITORY_ROOT), os.environ.get("PYTHONPATH")])
    )

    completed = subprocess.run(
        [sys.executable, "-m", "pytest", "-q", "-p", "no:cacheprovider", "tests"],
        cwd=project,
        env=environ,
        capture_output=True,
        text=True,
        timeout=300,
    )

    assert completed.returncode == 0, completed.stdout + completed.stderr
    assert " passed" in completed.stdout
