"""CLI for the report store: schema migrations and manual recovery."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from app.config import get_settings
from app.db.engine import Database
from app.errors import MigrationError


def _database(args) -> Database:
    overrides = {"database_url": args.database_url} if args.database_url else {}
    return Database.from_settings(get_settings(**overrides))


async def cmd_migrate(args):
    """Apply every pending migration."""
    from app.db.migrator import run_migrations

    database = _database(args)
    try:
        applied = await run_migrations(database)
    finally:
        await database.dispose()
    print(f"Applied {applied} migration(s)")


async def cmd_status(args):
    """Show applied and pending schema versions."""
    from app.db.migrator import migration_status

    database = _database(args)
    try:
        status = await migration_status(database)
    finally:
        await database.dispose()

    print(f"Current version: {status.current_version if status.current_version is not None else '-'}")
    print(f"Applied: {', '.join(map(str, status.applied)) or '-'}")
    print(f"Pending: {', '.join(map(str, status.pending)) or '-'}")


async def cmd_revert(args):
    """Run the reverse script of the latest applied migration."""
    from app.db.migrator import revert_migration

    if not args.yes:
        answer = input(f"Revert schema version {args.version}? This may drop data. [y/N] ")
        if answer.strip().lower() != "y":
            print("Aborted")
            sys.exit(1)

    database = _database(args)
    try:
        await revert_migration(database, args.version)
    finally:
        await database.dispose()
    print(f"Reverted migration {args.version}")


def main():
    parser = argparse.ArgumentParser(description="Campus WiFi reports CLI")
    parser.add_argument("--database-url", default="", help="Override the configured database URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("migrate", help="Apply pending schema migrations")
    subparsers.add_parser("status", help="Show applied and pending migrations")

    rv = subparsers.add_parser("revert", help="Revert the latest applied migration (manual recovery)")
    rv.add_argument("version", type=int, help="Version to revert; must be the latest applied")
    rv.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {"migrate": cmd_migrate, "status": cmd_status, "revert": cmd_revert}
    try:
        asyncio.run(commands[args.command](args))
    except MigrationError as e:
        print(f"Migration error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
