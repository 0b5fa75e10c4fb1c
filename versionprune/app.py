"""Command-line entry point for versionprune."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from rich.console import Console

from . import __version__
from .config import CONFIG_FILE, AppConfig, load_config
from .connections import ConfigError, DatabaseConnectionError, QueryError
from .session import CleanupSession

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TABLE_FAILED = 1
EXIT_FATAL = 2


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="versionprune",
        description="Delete all but the newest versions of every record in *_versions tables.",
    )
    parser.add_argument("--keep", type=int, default=None, help="Versions to keep per record")
    parser.add_argument("--base-path", default=None, help="Directory the declarations file search starts from")
    parser.add_argument("--env-file", default=None, help="Declarations file name (default .env)")
    parser.add_argument(
        "--format",
        dest="declaration_format",
        choices=("dotenv", "php-define"),
        default=None,
        help="Declarations file format",
    )
    parser.add_argument("--report", choices=("none", "text", "html"), default=None, help="Report output")
    parser.add_argument("--config", type=Path, default=CONFIG_FILE, help="Path to config.toml")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def build_config(args: argparse.Namespace) -> AppConfig:
    try:
        return load_config(args.config).with_overrides(
            versions_to_keep=args.keep,
            base_path=args.base_path,
            env_filename=args.env_file,
            declaration_format=args.declaration_format,
            report=args.report,
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def main(argv: Sequence[str] | None = None, *, console: Console | None = None) -> int:
    """Run one cleanup pass and return the process exit code."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.verbose)
    console = console or Console()
    try:
        config = build_config(args)
        with CleanupSession(config) as session:
            successful = session.remove_version_duplicates()
            report = session.report
    except (ConfigError, DatabaseConnectionError, QueryError) as exc:
        LOG.error("%s", exc)
        console.print(str(exc), style="red", markup=False)
        return EXIT_FATAL

    if config.report == "html":
        console.print(report.render_html(), markup=False, highlight=False, soft_wrap=True)
    elif config.report == "text":
        report.render_text(console)
    return EXIT_OK if successful else EXIT_TABLE_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
