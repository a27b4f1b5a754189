"""CLI entry point for the Gemini CLI orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from . import __version__
from .config import OrchestratorConfig, configure_logging, load_config
from .services.rebuild import RESTORE_FLAG

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gemini-orchestrator",
        description="Gemini CLI Orchestrator - an interactive shell that hands off to external commands",
    )
    parser.add_argument(
        RESTORE_FLAG,
        dest="restore",
        action="store_true",
        help="Restore the session saved before the last relaunch",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _load_config_or_exit(config_path: Path | None) -> OrchestratorConfig:
    try:
        return load_config(config_path)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def main(argv: Sequence[str] | None = None) -> None:
    args_list = list(sys.argv[1:] if argv is None else argv)
    args = _build_parser().parse_args(args_list)

    config = _load_config_or_exit(args.config)
    log_path = configure_logging(config)
    logger.info("Starting gemini-orchestrator %s (log: %s)", __version__, log_path)

    from .cli.repl import run_cli

    try:
        code = asyncio.run(run_cli(config, restore=args.restore, argv=args_list))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
