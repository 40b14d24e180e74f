"""Pharmastock CLI - trigger and operate stock file ingestion.

Usage:
    python -m pharmastock run
    python -m pharmastock serve [--host HOST] [--port PORT]
    python -m pharmastock migrate [--revision REV]

Global options:
    --log-level LEVEL    Logging level (default: INFO)

Exit codes:
    0: Success
    1: Configuration error / internal error
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from pharmastock.config import IngestionSettings
from pharmastock.errors import ConfigError
from pharmastock.persistence.db import DatabaseConfigError, create_db_engine, get_database_url

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _make_error_result(code: str, message: str) -> dict[str, Any]:
    """Create an error object for JSON output."""
    return {"error": {"code": code, "message": message}}


def cmd_run(args: argparse.Namespace) -> int:
    """Execute one ingestion run and print its counts."""
    from pharmastock.services.ingestion.factory import run_scheduled

    summary = run_scheduled()
    _output_json(summary.to_dict())
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the HTTP trigger with the interval worker running."""
    import uvicorn

    from pharmastock.app import create_app
    from pharmastock.services.ingestion.factory import (
        build_orchestrator,
        create_engine_from_settings,
    )

    settings = IngestionSettings.from_env()
    engine = create_engine_from_settings(settings)
    app = create_app(
        build_orchestrator(settings, engine=engine),
        run_worker=True,
        interval_seconds=settings.run_interval_seconds,
    )
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    finally:
        if engine is not None:
            engine.dispose()
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Upgrade the database schema."""
    from pharmastock.persistence.migrations import get_current_revision, run_upgrade

    engine = create_db_engine(get_database_url())
    try:
        run_upgrade(engine, args.revision)
        revision = get_current_revision(engine)
    finally:
        engine.dispose()
    _output_json({"revision": revision})
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="pharmastock",
        description="Pharmastock - pharmacy stock file ingestion CLI",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("run", help="Run one ingestion pass and print the counts as JSON")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Serve the HTTP trigger and run ingestion on a fixed interval",
    )
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate_parser.add_argument(
        "--revision",
        default="head",
        help="Target revision (default: head)",
    )

    return parser


COMMAND_DISPATCH = {
    "run": cmd_run,
    "serve": cmd_serve,
    "migrate": cmd_migrate,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Configuration error / internal error
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        return COMMAND_DISPATCH[args.command](args)
    except (ConfigError, DatabaseConfigError) as e:
        _output_json(_make_error_result("CONFIG_ERROR", str(e)))
        return 1
    except Exception as e:
        logger.error("Command %s failed: %s", args.command, e, exc_info=True)
        _output_json(_make_error_result("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
