"""Migration runner: brings a store from empty to the current catalog version.

Runs single-threaded to completion before anything else touches the store.
Any failure rolls back the migration being applied and raises
``MigrationError``; callers must treat that as fatal.
"""

from __future__ import annotations

import logging
from collections import Counter
from contextlib import nullcontext
from typing import Sequence

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection

from app.db.engine import Database
from app.db.migrations import Migration, catalog_for
from app.errors import MigrationError
from app.models import MigrationRecord
from app.models.base import utcnow
from app.schemas.migration import MigrationStatus

logger = logging.getLogger(__name__)

_ledger = MigrationRecord.__table__


def validate_catalog(catalog: Sequence[Migration]) -> None:
    """Reject catalogs with duplicate, missing or out-of-order versions."""
    if not catalog:
        raise MigrationError("Migration catalog is empty")

    versions = [m.version for m in catalog]
    duplicates = sorted(v for v, n in Counter(versions).items() if n > 1)
    if duplicates:
        raise MigrationError(f"Duplicate migration versions in catalog: {duplicates}")

    if versions[0] < 1:
        raise MigrationError(f"Migration versions must start at 1 or above, got {versions[0]}")

    expected = list(range(versions[0], versions[0] + len(versions)))
    if versions != expected:
        missing = sorted(set(range(min(versions), max(versions) + 1)) - set(versions))
        if missing:
            raise MigrationError(f"Gap in migration catalog, missing versions: {missing}")
        raise MigrationError(f"Migration catalog is not in ascending order: {versions}")


async def ensure_ledger(database: Database) -> None:
    async with database.engine.begin() as conn:
        await conn.run_sync(_ledger.create, checkfirst=True)


async def applied_versions(database: Database) -> list[int]:
    async with database.transaction(write=False) as db:
        result = await db.execute(select(MigrationRecord.version).order_by(MigrationRecord.version))
        return list(result.scalars().all())


async def _execute_script(database: Database, conn: AsyncConnection, migration: Migration,
                          statements: Sequence[str]) -> None:
    for statement in statements:
        await conn.exec_driver_sql(statement)
    if not migration.foreign_keys:
        violations = await database.backend.foreign_key_violations(conn)
        if violations:
            raise MigrationError(
                f"Migration {migration.version} ({migration.name}) left dangling references",
                version=migration.version,
                details=violations,
            )


async def _run_in_transaction(database: Database, migration: Migration, statements: Sequence[str],
                              record: bool) -> None:
    async with database.connect() as conn:
        suspend = nullcontext() if migration.foreign_keys else database.backend.foreign_keys_suspended(conn)
        async with suspend:
            async with conn.begin():
                await _execute_script(database, conn, migration, statements)
                if record:
                    await conn.execute(
                        insert(_ledger).values(
                            version=migration.version, name=migration.name, applied_at=utcnow(),
                        )
                    )
                else:
                    await conn.execute(delete(_ledger).where(_ledger.c.version == migration.version))


async def apply_migration(database: Database, migration: Migration) -> None:
    """Pending -> Applying -> Applied, or Failed with the transaction rolled back."""
    logger.info(f"Applying migration {migration.version}: {migration.name}")
    try:
        await _run_in_transaction(database, migration, migration.forward, record=True)
    except MigrationError as e:
        logger.error(f"Migration {migration.version} ({migration.name}) failed: {e}")
        raise
    except DBAPIError as e:
        logger.error(f"Migration {migration.version} ({migration.name}) failed: {e.orig}")
        raise MigrationError(
            f"Migration {migration.version} ({migration.name}) failed: {e.orig}",
            version=migration.version,
        ) from e
    logger.info(f"Applied migration {migration.version}: {migration.name}")


async def run_migrations(database: Database, catalog: Sequence[Migration] | None = None) -> int:
    """Apply every catalog entry not yet in the ledger. Returns how many were applied."""
    if catalog is None:
        catalog = catalog_for(database.backend)
    validate_catalog(catalog)

    try:
        await ensure_ledger(database)
        applied = set(await applied_versions(database))
    except DBAPIError as e:
        logger.error(f"Could not read migration ledger: {e.orig}")
        raise MigrationError(f"Could not read migration ledger: {e.orig}") from e

    known = {m.version for m in catalog}
    unknown = sorted(applied - known)
    if unknown:
        raise MigrationError(
            f"Store has versions {unknown} that this catalog does not know; refusing to continue"
        )

    pending = [m for m in catalog if m.version not in applied]
    if not pending:
        logger.info("Schema is up to date, no migrations to apply")
        return 0

    logger.info(f"Applying {len(pending)} pending migration(s)")
    for migration in pending:
        await apply_migration(database, migration)
    logger.info("All migrations applied")
    return len(pending)


async def migration_status(database: Database, catalog: Sequence[Migration] | None = None) -> MigrationStatus:
    if catalog is None:
        catalog = catalog_for(database.backend)
    await ensure_ledger(database)
    applied = await applied_versions(database)
    pending = [m.version for m in catalog if m.version not in set(applied)]
    return MigrationStatus(
        applied=applied,
        pending=pending,
        current_version=applied[-1] if applied else None,
    )


async def revert_migration(database: Database, version: int,
                           catalog: Sequence[Migration] | None = None) -> None:
    """Manual recovery: undo the most recently applied version.

    Never called by ``run_migrations``.
    """
    if catalog is None:
        catalog = catalog_for(database.backend)
    by_version = {m.version: m for m in catalog}

    await ensure_ledger(database)
    applied = await applied_versions(database)
    if not applied or applied[-1] != version:
        raise MigrationError(
            f"Only the latest applied version can be reverted (latest: {applied[-1] if applied else None})",
            version=version,
        )
    migration = by_version.get(version)
    if migration is None or migration.reverse is None:
        raise MigrationError(f"Migration {version} has no reverse script", version=version)

    logger.warning(f"Reverting migration {migration.version}: {migration.name}")
    try:
        await _run_in_transaction(database, migration, migration.reverse, record=False)
    except DBAPIError as e:
        logger.error(f"Revert of migration {version} failed: {e.orig}")
        raise MigrationError(f"Revert of migration {version} failed: {e.orig}", version=version) from e
    logger.info(f"Reverted migration {migration.version}: {migration.name}")
