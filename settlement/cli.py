"""
Settlement - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the settlement service.

- api        Run the Decision API (uvicorn)
- scheduler  Run the settlement sweep on a fixed cadence
- sweep      Run ONE settlement batch and print its summary
- reconcile  Retry missing payouts and detect unpaid wins
- init-db    Create tables and verify the schema

============================================================
USAGE
============================================================
python app.py api --port 8000
python app.py scheduler --interval 30
python app.py sweep          # cron-style trigger
python app.py reconcile

============================================================
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional

from core.exceptions import ConfigurationError
from database.engine import (
    create_database_engine,
    initialize_database,
    DatabasePersistenceError,
)
from .config import SettlementConfig
from .service import build_settlement_services


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure the root logger."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="trade-settlement",
        description="Trade settlement service for the admin console",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    api = commands.add_parser("api", help="Run the Decision API")
    api.add_argument("--host", default="0.0.0.0")
    api.add_argument("--port", type=int, default=8000)
    api.add_argument(
        "--with-scheduler",
        action="store_true",
        help="Also run the settlement sweep inside the API process",
    )

    scheduler = commands.add_parser("scheduler", help="Run the settlement sweep forever")
    scheduler.add_argument(
        "--interval",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Seconds between ticks (default: SETTLEMENT_INTERVAL_SECONDS)",
    )

    commands.add_parser("sweep", help="Run one settlement batch and exit")
    commands.add_parser("reconcile", help="Retry failed payouts and detect unpaid wins")
    commands.add_parser("init-db", help="Create tables and verify the schema")

    return parser


# ============================================================
# COMMANDS
# ============================================================

def run_api(args: argparse.Namespace, config: SettlementConfig) -> int:
    import uvicorn
    from decision_api.main import create_app

    if args.with_scheduler:
        config.run_scheduler_in_api = True

    uvicorn.run(create_app(config), host=args.host, port=args.port)
    return 0


async def run_scheduler_forever(config: SettlementConfig) -> int:
    services = build_settlement_services(config)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    await services.scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await services.scheduler.stop()
    return 0


def run_sweep(config: SettlementConfig) -> int:
    services = build_settlement_services(config)
    summary = services.scheduler.run_once()

    for outcome in summary.flagged:
        services.alerter.send_payout_failure_sync(outcome)

    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.failed == 0 else 1


def run_reconcile(config: SettlementConfig) -> int:
    services = build_settlement_services(config)
    report = services.reconciler.run()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if not report.still_failing else 1


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = SettlementConfig.from_env()
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    setup_logging(args.log_level or config.log_level, args.log_format)

    if getattr(args, "interval", None) is not None:
        config.scheduler.interval_seconds = args.interval
        errors = config.validate()
        if errors:
            for error in errors:
                print(f"Error: {error}", file=sys.stderr)
            return 1

    if config.database_url:
        create_database_engine(config.database_url)

    try:
        if args.command == "api":
            return run_api(args, config)
        if args.command == "scheduler":
            return asyncio.run(run_scheduler_forever(config))
        if args.command == "sweep":
            return run_sweep(config)
        if args.command == "reconcile":
            return run_reconcile(config)
        if args.command == "init-db":
            initialize_database()
            return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except DatabasePersistenceError as e:
        logger.error(f"Database error: {e}")
        return 1

    parser.error(f"unknown command {args.command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
