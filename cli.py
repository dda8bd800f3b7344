"""Command line entry point for the RMM dashboard."""

import argparse
import dataclasses
import sys
from typing import List, Optional

from api import ApiError, build_backends
from common.config import Config, ConfigError
from common.logging_setup import get_logger, setup_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="RMM Dashboard - terminal view over Datto RMM and security backends",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--env-file",
        help="Path to a .env file (defaults to ./.env when present)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides DASHBOARD_LOG_LEVEL)",
    )

    parser.add_argument(
        "--log-file",
        help="Log file path (overrides DASHBOARD_LOG_FILE)",
    )

    return parser


def load_config(args: argparse.Namespace) -> Config:
    config = Config.from_env(env_file=args.env_file)
    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_file:
        overrides["log_file"] = args.log_file
    return dataclasses.replace(config, **overrides)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for rmm-dashboard."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(level=config.log_level, log_file=config.log_file)

    try:
        backends = build_backends(config)
    except ApiError as e:
        logger.error(f"Startup failed: {e}")
        print(f"Failed to connect to Datto RMM: {e}", file=sys.stderr)
        sys.exit(1)

    from ui_service.ui import main as run_ui

    sys.exit(run_ui(config, backends))


if __name__ == "__main__":
    main()
