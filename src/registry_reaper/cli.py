"""CLI for Registry Reaper."""

import argparse
import sys
from pathlib import Path

import structlog

from .config import Config
from .exceptions import RegistryUnavailableError
from .factory import Factory


def _positive_int(value: str) -> int:
    count = int(value)
    if count < 1:
        raise argparse.ArgumentTypeError(f"must be positive, not {count}")
    return count


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description=(
            "Delete old image tags from a Docker registry, keeping the most"
            " recent ones and at least one semantic-version release."
        )
    )
    parser.add_argument(
        "-c",
        "--config-file",
        "--file",
        type=Path,
        help="reaper config file (default: configure from environment)",
        default=None,
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
        default=False,
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-x",
        "--dry-run",
        action="store_true",
        help="Dry run only: do not delete any images",
        default=False,
    )
    mode.add_argument(
        "--execute",
        action="store_true",
        help="Really delete images, overriding configuration",
        default=False,
    )
    parser.add_argument(
        "-n",
        "--retention-count",
        type=_positive_int,
        help="number of most recent images to keep in each repository",
        default=None,
    )
    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> Config:
    if args.config_file:
        cfg = Config.from_file(args.config_file)
    else:
        cfg = Config.from_environment()

    # Override settings in config, if specified here
    reg = cfg.registry
    if args.dry_run:
        reg.dry_run = True
    if args.execute:
        reg.dry_run = False
    if args.debug:
        reg.debug = True
    if args.retention_count is not None:
        reg.retention_count = args.retention_count
    return cfg


def main(argv: list[str] | None = None) -> None:
    """Reap a registry; exit non-zero if it could not be reached."""
    args = _parse_args(argv)
    cfg = _load_config(args)
    logger = structlog.get_logger(__name__)
    try:
        with Factory.standalone(cfg.registry) as factory:
            factory.create_reaper().run()
    except RegistryUnavailableError as exc:
        logger.error(str(exc))
        sys.exit(1)
    except Exception as exc:
        logger.exception(f"Unexpected error: {exc}")
        sys.exit(1)
