"""Storage-engine capability sets.

A backend answers the questions the services cannot answer portably: how a
write transaction is opened, how a constraint violation shows up in a driver
error, and how the denormalized ``reports.empathy_count`` column is kept equal
to the number of ``empathies`` rows. Service code is written once against this
interface.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event, func, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession

from app.errors import AppError, NotFoundError, ServerError
from app.models import Empathy, Report

logger = logging.getLogger(__name__)

_BEGIN_MODE_OPTION = "sqlite_begin_mode"


# ── Counter maintenance ───────────────────────────────────

class CounterMaintenance:
    """Keeps ``empathy_count`` in step with the vote rows inside the caller's transaction."""

    name = "abstract"

    async def sync(self, db: AsyncSession, report_id: str) -> None:
        raise NotImplementedError


class TriggerCounter(CounterMaintenance):
    """Storage-level triggers already adjusted the counter within the same statement."""

    name = "trigger"

    async def sync(self, db: AsyncSession, report_id: str) -> None:
        return None


class RecomputeCounter(CounterMaintenance):
    """Rewrite the counter from the row count in the same transaction as the vote change."""

    name = "recompute"

    async def sync(self, db: AsyncSession, report_id: str) -> None:
        row_count = (
            select(func.count(Empathy.id))
            .where(Empathy.report_id == report_id)
            .scalar_subquery()
        )
        await db.execute(
            update(Report)
            .where(Report.id == report_id)
            .values(empathy_count=row_count)
            .execution_options(synchronize_session=False)
        )


_COUNTERS = {"trigger": TriggerCounter, "recompute": RecomputeCounter}


# ── Backends ──────────────────────────────────────────────

class StorageBackend:
    name = "generic"
    native_counter = "recompute"

    def connect_args(self, busy_timeout: float) -> dict:
        return {}

    def configure_engine(self, engine: AsyncEngine) -> None:
        """Install engine-level event hooks. Called once per engine."""

    def write_options(self) -> dict:
        """Execution options for connections that will write."""
        return {}

    def counter(self, mode: str = "") -> CounterMaintenance:
        mode = mode or self.native_counter
        try:
            return _COUNTERS[mode]()
        except KeyError:
            raise ValueError(f"Unknown counter mode {mode!r}; expected one of {sorted(_COUNTERS)}")

    # Error classification. ``exc`` is the SQLAlchemy wrapper; ``exc.orig`` is the driver error.

    def is_unique_violation(self, exc: DBAPIError) -> bool:
        return False

    def is_foreign_key_violation(self, exc: DBAPIError) -> bool:
        return False

    def is_check_violation(self, exc: DBAPIError) -> bool:
        return False

    def translate(self, exc: DBAPIError, message: str) -> AppError:
        """Map a driver error onto the error taxonomy.

        Only a missing parent row has a caller-facing meaning here; anything
        else is an unexpected storage failure.
        """
        if self.is_foreign_key_violation(exc):
            return NotFoundError("제보를 찾을 수 없습니다")
        logger.error(f"{message}: {exc.orig}")
        return ServerError(message)

    @asynccontextmanager
    async def foreign_keys_suspended(self, conn: AsyncConnection) -> AsyncIterator[None]:
        """Run a schema rebuild without cascading through foreign keys."""
        yield

    async def foreign_key_violations(self, conn: AsyncConnection) -> list:
        return []


class SqliteBackend(StorageBackend):
    """Embedded file store. Counter maintained by triggers from the migration catalog."""

    name = "sqlite"
    native_counter = "trigger"

    def connect_args(self, busy_timeout: float) -> dict:
        return {"timeout": busy_timeout}

    def configure_engine(self, engine: AsyncEngine) -> None:
        # pysqlite defers BEGIN until the first DML statement, which breaks
        # transactional DDL and lets two writers race from SHARED to RESERVED.
        # Take over transaction control and emit BEGIN ourselves.
        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _on_begin(conn):
            mode = conn.get_execution_options().get(_BEGIN_MODE_OPTION, "DEFERRED")
            conn.exec_driver_sql(f"BEGIN {mode}")

    def write_options(self) -> dict:
        # Writers take the RESERVED lock up front and queue on the busy timeout.
        return {_BEGIN_MODE_OPTION: "IMMEDIATE"}

    @staticmethod
    def _error_text(exc: DBAPIError) -> tuple[str, str]:
        orig = getattr(exc, "orig", exc)
        return getattr(orig, "sqlite_errorname", "") or "", str(orig)

    def is_unique_violation(self, exc: DBAPIError) -> bool:
        name, message = self._error_text(exc)
        return name in ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY") or \
            "UNIQUE constraint failed" in message

    def is_foreign_key_violation(self, exc: DBAPIError) -> bool:
        name, message = self._error_text(exc)
        return name == "SQLITE_CONSTRAINT_FOREIGNKEY" or "FOREIGN KEY constraint failed" in message

    def is_check_violation(self, exc: DBAPIError) -> bool:
        name, message = self._error_text(exc)
        return name == "SQLITE_CONSTRAINT_CHECK" or "CHECK constraint failed" in message

    @asynccontextmanager
    async def foreign_keys_suspended(self, conn: AsyncConnection) -> AsyncIterator[None]:
        # PRAGMA foreign_keys is a no-op inside a transaction, so it must be
        # issued on the raw connection before SQLAlchemy begins one.
        raw = await conn.get_raw_connection()
        driver = raw.driver_connection
        async with driver.execute("PRAGMA foreign_keys=OFF"):
            pass
        try:
            yield
        finally:
            async with driver.execute("PRAGMA foreign_keys=ON"):
                pass

    async def foreign_key_violations(self, conn: AsyncConnection) -> list:
        result = await conn.exec_driver_sql("PRAGMA foreign_key_check")
        return [tuple(row) for row in result.fetchall()]


class PostgresBackend(StorageBackend):
    """Hosted relational store. Counter recomputed by the application."""

    name = "postgresql"
    native_counter = "recompute"

    @staticmethod
    def _sqlstate(exc: DBAPIError) -> str | None:
        orig = getattr(exc, "orig", exc)
        for candidate in (orig, getattr(orig, "__cause__", None)):
            if candidate is None:
                continue
            code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
            if code:
                return str(code)
        return None

    def is_unique_violation(self, exc: DBAPIError) -> bool:
        return self._sqlstate(exc) == "23505"

    def is_foreign_key_violation(self, exc: DBAPIError) -> bool:
        return self._sqlstate(exc) == "23503"

    def is_check_violation(self, exc: DBAPIError) -> bool:
        return self._sqlstate(exc) == "23514"


_BACKENDS = {"sqlite": SqliteBackend, "postgresql": PostgresBackend}


def backend_for(dialect_name: str) -> StorageBackend:
    """Pick the capability set for a SQLAlchemy dialect name."""
    try:
        return _BACKENDS[dialect_name]()
    except KeyError:
        logger.warning(f"No dedicated backend for dialect {dialect_name!r}, using generic")
        return StorageBackend()
