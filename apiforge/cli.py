"""Command line interface.

Usage:
  python -m apiforge new NAME [-o OUTPUT_DIR] [ARG=VALUE ...]
  python -m apiforge serve [--environment ENV] [--settings DIR] [--host HOST] [--port PORT]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from apiforge.app import create_app
from apiforge.exceptions import ApiForgeError
from apiforge.observability.logging import get_logger
from apiforge.scaffold import FEATURE_ARGUMENTS, generate_project

logger = get_logger(__name__)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="apiforge", description="Service bootstrap kit")
    commands = p.add_subparsers(dest="command", required=True)

    new = commands.add_parser("new", help="Generate a starter project")
    new.add_argument("name", help="Project name and directory name")
    new.add_argument("-o", "--output", type=Path, default=Path("."), help="Parent directory")
    new.add_argument(
        "arguments",
        nargs="*",
        metavar="ARG=VALUE",
        help=f"Template arguments: title, description, {', '.join(FEATURE_ARGUMENTS)}",
    )

    serve = commands.add_parser("serve", help="Run the service with uvicorn")
    serve.add_argument("--environment", default=None, help="Host environment (default: APIFORGE_ENVIRONMENT)")
    serve.add_argument("--settings", type=Path, default=None, help="Directory holding appsettings*.json")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    ns, extras = p.parse_known_args(argv)
    # Template arguments may follow options such as -o, which argparse leaves unparsed.
    if extras and (ns.command != "new" or any(extra.startswith("-") for extra in extras)):
        p.error(f"unrecognized arguments: {' '.join(extras)}")
    if extras:
        ns.arguments = [*ns.arguments, *extras]
    return ns


def serve(environment: str | None, settings: Path | None, host: str, port: int) -> None:
    app = create_app(
        environment=environment,
        settings_dir=str(settings) if settings else None,
        set_global_tracer_provider=True,
    )
    options = app.state.options
    limits = options.kestrel.limits
    uvicorn.run(
        app,
        host=host,
        port=port,
        server_header=options.kestrel.add_server_header,
        timeout_keep_alive=int(limits.keep_alive_timeout.total_seconds()),
        limit_concurrency=limits.max_concurrent_connections,
        timeout_graceful_shutdown=int(options.host.shutdown_timeout.total_seconds()),
        proxy_headers=False,
        log_config=None,
    )


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    ns = _parse_args(list(sys.argv[1:] if argv is None else argv))
    try:
        if ns.command == "new":
            project_dir = generate_project(ns.output, ns.name, ns.arguments)
            print(f"Created {project_dir}")
        else:
            serve(ns.environment, ns.settings, ns.host, ns.port)
    except ApiForgeError as e:
        logger.error("command_failed", command=ns.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


__all__ = ["main", "serve"]
