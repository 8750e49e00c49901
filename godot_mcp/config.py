"""Server configuration from command-line flags and the environment."""

import argparse
import os
from dataclasses import dataclass
from pathlib import Path

ENV_PROJECT_ROOT = "GODOT_MCP_PROJECT_ROOT"
ENV_LOG_LEVEL = "GODOT_MCP_LOG_LEVEL"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServerConfig:
    project_root: Path
    log_level: str = "INFO"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="godot-mcp",
        description="MCP server exposing script read/create/modify tools for one Godot project.",
    )
    parser.add_argument(
        "--project-root",
        help=f"Godot project directory (default: ${ENV_PROJECT_ROOT})",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help=f"Logging level on stderr (default: ${ENV_LOG_LEVEL} or INFO)",
    )
    return parser


def load_config(argv=None, environ=None) -> ServerConfig:
    """Parse ``argv`` with environment fallbacks. Exits with status 2 on bad input."""
    environ = os.environ if environ is None else environ
    parser = build_parser()
    args = parser.parse_args(argv)

    root = args.project_root or environ.get(ENV_PROJECT_ROOT)
    if not root:
        parser.error(f"--project-root or ${ENV_PROJECT_ROOT} is required")
    project_root = Path(root).expanduser()
    if not project_root.is_dir():
        parser.error(f"project root {project_root} is not a directory")

    log_level = args.log_level or environ.get(ENV_LOG_LEVEL, "INFO").upper()
    if log_level not in LOG_LEVELS:
        parser.error(f"invalid log level {log_level!r} in ${ENV_LOG_LEVEL}")

    return ServerConfig(project_root=project_root.resolve(), log_level=log_level)
