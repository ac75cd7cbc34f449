"""
Helpers shared by the CLI commands: logging setup and Bridge construction.
"""

import json
import logging
import sys
from pathlib import Path

import typer
from pydantic import ValidationError as PydanticValidationError

from beads_bridge.cli.errors import ExitCode, print_error
from beads_bridge.core.bridge import Bridge
from beads_bridge.core.config import load_config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(debug: bool) -> None:
    """
    Configure root logging on stderr.

    Args:
        debug: If True, enable DEBUG level logging for everything
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def is_debug(ctx: typer.Context | None) -> bool:
    if ctx is None:
        return False
    root = ctx.find_root()
    return bool(root.obj and root.obj.get("debug"))


def open_bridge(ctx: typer.Context | None = None, project_dir: Path | None = None) -> Bridge:
    """
    Load configuration and build a Bridge for the current project.

    The package logger follows the configured level unless --debug was given.
    Invalid configuration exits with USER_ERROR.
    """
    project_dir = project_dir or Path.cwd()
    try:
        config = load_config(project_dir)
    except PydanticValidationError as e:
        print_error(
            "Invalid beads-bridge configuration",
            reason=str(e),
            solution="Check .beads-bridge/config.json and BEADS_BRIDGE_* variables",
        )
        raise typer.Exit(ExitCode.USER_ERROR)

    if not is_debug(ctx):
        logging.getLogger("beads_bridge").setLevel(config.logging.level.upper())

    return Bridge.from_config(config, project_dir)


def echo_json(data: object) -> None:
    """Write JSON to stdout unwrapped so it stays machine-readable."""
    typer.echo(json.dumps(data, indent=2, default=str))
