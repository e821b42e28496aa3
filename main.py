"""
Garage scheduler command-line entry point.

Usage:
    Create tables:  python main.py migrate [--database-url URL]
    Console demo:   python main.py demo [--scenario NAME]
"""

import argparse
import logging
import sys
from typing import Optional

from src.config import settings
from src.stores.sql import SqlGarageStore

logger = logging.getLogger(__name__)


def _run_migrate(database_url: str) -> int:
    """Create the schema once, before any request is served."""
    if not database_url:
        logger.error("DATABASE_URL is not set; the in-memory store needs no migration")
        return 1
    SqlGarageStore(
        database_url, settings.store.booking_id_prefix, settings.store.task_id_prefix
    ).migrate()
    return 0


def _run_demo(scenario: Optional[str]) -> int:
    """Start the offline console demo (in-memory store)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    if scenario:
        session.run_scenario(scenario)
    else:
        session.run()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog=settings.app_name, description=__doc__.splitlines()[1])
    commands = parser.add_subparsers(dest="command", required=True)

    migrate = commands.add_parser("migrate", help="Create database tables")
    migrate.add_argument("--database-url", default=settings.store.database_url)

    demo = commands.add_parser("demo", help="Run the offline console demo")
    demo.add_argument("--scenario", default=None)

    args = parser.parse_args(argv)
    logger.info("Starting %s: %s", settings.app_name, args.command)
    if args.command == "migrate":
        return _run_migrate(args.database_url)
    return _run_demo(args.scenario)


if __name__ == "__main__":
    sys.exit(main())
