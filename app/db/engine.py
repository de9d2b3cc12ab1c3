"""Async SQLAlchemy engine and transaction scopes for the report store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession, async_sessionmaker, create_async_engine

from app.config import Settings
from app.db.backends import StorageBackend, backend_for

logger = logging.getLogger(__name__)


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


class Database:
    """Owns one engine/pool and hands out scoped transactions.

    Constructed explicitly and passed to every service call; there is no
    module-level handle.
    """

    def __init__(
        self,
        url: str,
        *,
        backend: StorageBackend | None = None,
        counter_mode: str = "",
        busy_timeout: float = 5.0,
        echo: bool = False,
    ):
        self.url = url
        self.backend = backend or backend_for(make_url(url).get_backend_name())
        _ensure_sqlite_dir(url)

        self.engine = create_async_engine(
            url, echo=echo, connect_args=self.backend.connect_args(busy_timeout),
        )
        self.backend.configure_engine(self.engine)
        self.counter = self.backend.counter(counter_mode)

        self._read_sessions = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False,
        )
        self._write_sessions = async_sessionmaker(
            self.engine.execution_options(**self.backend.write_options()),
            class_=AsyncSession, expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            counter_mode=settings.counter_mode,
            busy_timeout=settings.sqlite_busy_timeout,
            echo=settings.echo_sql,
        )

    @asynccontextmanager
    async def transaction(self, write: bool = True) -> AsyncIterator[AsyncSession]:
        """Yield a session inside one transaction.

        Commits when the block exits normally, rolls back on any exception,
        and always returns the connection to the pool.
        """
        factory = self._write_sessions if write else self._read_sessions
        async with factory() as session:
            async with session.begin():
                yield session

    @asynccontextmanager
    async def connect(self, write: bool = True) -> AsyncIterator[AsyncConnection]:
        """Yield a Core connection with no transaction begun yet."""
        async with self.engine.connect() as conn:
            if write:
                await conn.execution_options(**self.backend.write_options())
            yield conn

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> int:
        """Run one statement in its own write transaction; returns the affected row count."""
        async with self.transaction() as db:
            result = await db.execute(text(sql), params or {})
            return result.rowcount

    async def fetch_one(self, sql: str, params: dict[str, Any] | None = None) -> dict | None:
        async with self.transaction(write=False) as db:
            row = (await db.execute(text(sql), params or {})).mappings().first()
            return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        async with self.transaction(write=False) as db:
            rows = (await db.execute(text(sql), params or {})).mappings().all()
            return [dict(r) for r in rows]

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database connection closed")
