"""Shared fixtures: a disposable SQLite store per test."""

from __future__ import annotations

import pytest
import pytest_asyncio

from app.config import get_settings
from app.db.engine import Database
from app.db.migrator import run_migrations
from app.schemas.report import ReportCreate
from app.services import reports as report_service


@pytest.fixture
def settings():
    # Minimum bcrypt cost keeps the suite fast
    return get_settings(bcrypt_rounds=4, counter_mode="")


@pytest_asyncio.fixture
async def database(tmp_path):
    """Empty file-backed store; a file (not :memory:) so concurrent connections share it."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'reports.db'}")
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def migrated(database):
    await run_migrations(database)
    return database


@pytest.fixture
def report_factory(migrated, settings):
    async def _create(**overrides):
        data = {
            "campus": "김해캠퍼스",
            "building": "공학관",
            "location": "3층 301호",
            "problem_types": ["WiFi 연결 끊김"],
            "description": "수업 중에 와이파이가 계속 끊깁니다.",
            "password": "1234",
        }
        data.update(overrides)
        return await report_service.create_report(migrated, ReportCreate(**data), settings)
    return _create
