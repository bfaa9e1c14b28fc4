"""CLI entry point: migrate, inspect-log."""

from __future__ import annotations

import argparse
import logging
import sys

from scripts.clerk_migration.clerk import ClerkGateway
from scripts.clerk_migration.config import load_config
from scripts.clerk_migration.db import Database
from scripts.clerk_migration.errors import ConfigError
from scripts.clerk_migration.logging_config import configure_logging
from scripts.clerk_migration.migration_log import (
    MigrationLog,
    read_entries,
    summarize_entries,
)
from scripts.clerk_migration.models import RunContext
from scripts.clerk_migration.pipeline import MigrationPipeline

logger = logging.getLogger("clerk_migration.cli")


def cmd_migrate(args: argparse.Namespace) -> int:
    """Run the migration and print a summary."""
    print("Clerk User Migration Utility")

    try:
        config = load_config()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    offset = args.offset if args.offset is not None else config.offset
    if offset < 0:
        print("--offset must be non-negative", file=sys.stderr)
        return 2

    db = None
    try:
        db = Database(config.database)
        log = MigrationLog(args.log_dir or config.log_dir)
        logger.info("Writing failure log to %s", log.path)

        context = RunContext(log=log)
        pipeline = MigrationPipeline(db, ClerkGateway(config.clerk), context, config.pacing)
        counters = pipeline.run(offset)
    except Exception as exc:
        logger.error("Migration failed: %s", exc, exc_info=True)
        print("Migration failed", file=sys.stderr)
        print(exc, file=sys.stderr)
        return 1
    finally:
        if db is not None:
            db.close()

    print("Migration complete")
    print(f"{counters.migrated} logins migrated")
    print(f"{counters.already_exists} logins already existed")
    if counters.logins_failed or counters.users_failed:
        print(
            f"{counters.users_failed} users and {counters.logins_failed} logins failed, "
            f"see {log.path}"
        )
    return 0


def cmd_inspect_log(args: argparse.Namespace) -> int:
    """Summarise a migration log file."""
    entries = read_entries(args.path)
    summary = summarize_entries(entries)

    fmt = "{:<20}  {:>8}"
    print(fmt.format("CATEGORY", "COUNT"))
    print("-" * 30)
    for key, count in summary.items():
        print(fmt.format(key, count))
    print(fmt.format("total", len(entries)))

    if args.show_failures:
        print()
        for entry in entries:
            if entry.get("error") == "User already exists":
                continue
            subject = (
                f"user {entry['userId']}" if "userId" in entry
                else f"login {entry.get('loginId')}"
            )
            print(f"{subject}: {entry.get('error', '')}")
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="clerk-migration",
        description="Migrate users and logins from PostgreSQL into Clerk",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Process log level (default: INFO)",
    )
    parser.add_argument(
        "--plain-logs",
        action="store_true",
        help="Human-readable log lines instead of JSON",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate command
    migrate_parser = subparsers.add_parser("migrate", help="Run the migration")
    migrate_parser.add_argument(
        "--offset", "-o",
        type=int,
        default=None,
        help="Number of users to skip, ordered by id (default: OFFSET env or 0)",
    )
    migrate_parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for the migration-log-*.json file (default: MIGRATION_LOG_DIR or .)",
    )
    migrate_parser.set_defaults(func=cmd_migrate)

    # inspect-log command
    inspect_parser = subparsers.add_parser(
        "inspect-log", help="Summarise a migration-log-*.json file"
    )
    inspect_parser.add_argument("path", help="Path to the log file")
    inspect_parser.add_argument(
        "--show-failures",
        action="store_true",
        help="List every failure entry",
    )
    inspect_parser.set_defaults(func=cmd_inspect_log)

    args = parser.parse_args(argv)
    configure_logging(args.log_level, json_output=not args.plain_logs)
    sys.exit(args.func(args))
