"""Startup barrier and error rendering at the HTTP boundary."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.db import migrator
from app.db.engine import Database
from app.db.migrations import Migration
from app.dependencies import get_database, get_settings_dep
from app.errors import DuplicateVoteError, MigrationError, NotFoundError, ServerError
from app.main import create_app
from app.services import auth


async def test_lifespan_migrates_before_serving(tmp_path, settings):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    app = create_app(settings, database=database)

    async with app.router.lifespan_context(app):
        assert app.state.database is database
        status = await migrator.migration_status(database)
        assert status.applied == [1, 2, 3, 4]
        assert status.pending == []


async def test_migration_failure_aborts_startup(tmp_path, settings, monkeypatch):
    broken = (
        Migration(1, "one", ("CREATE TABLE one (id INTEGER)",)),
        Migration(3, "three", ("CREATE TABLE three (id INTEGER)",)),
    )
    monkeypatch.setattr(migrator, "catalog_for", lambda backend: broken)

    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    app = create_app(settings, database=database)

    with pytest.raises(MigrationError):
        async with app.router.lifespan_context(app):
            pytest.fail("app must not start serving")
    assert not hasattr(app.state, "database")


@pytest.fixture
def client_app(settings):
    app = create_app(settings)

    @app.get("/boom/{kind}")
    async def boom(kind: str):
        if kind == "duplicate":
            raise DuplicateVoteError()
        if kind == "missing":
            raise NotFoundError("제보를 찾을 수 없습니다")
        raise ServerError(details={"driver": "disk I/O error"})

    return app


async def test_error_kinds_map_to_status(client_app):
    async with AsyncClient(transport=ASGITransport(app=client_app), base_url="http://test") as ac:
        r = await ac.get("/boom/duplicate")
        assert r.status_code == 409
        assert r.json() == {
            "success": False,
            "error": {"code": "DUPLICATE_EMPATHY", "message": "이미 공감하셨습니다"},
        }

        r = await ac.get("/boom/missing")
        assert r.status_code == 404
        assert r.json()["error"]["code"] == "NOT_FOUND"

        r = await ac.get("/boom/server")
        assert r.status_code == 500
        assert r.json()["error"]["code"] == "SERVER_ERROR"
        assert "details" not in r.json()["error"]


async def test_get_database_dependency(tmp_path, settings):
    from fastapi import Depends

    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    app = create_app(settings, database=database)

    @app.get("/db-url")
    async def db_url(db: Database = Depends(get_database)):
        return {"url": db.url}

    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            r = await ac.get("/db-url")
    assert r.json() == {"url": database.url}


async def test_get_settings_dependency(tmp_path, settings):
    from fastapi import Depends

    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    app = create_app(settings, database=database)

    @app.get("/rounds")
    async def rounds(s: Settings = Depends(get_settings_dep)):
        return {"bcrypt_rounds": s.bcrypt_rounds}

    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            r = await ac.get("/rounds")
    assert r.json() == {"bcrypt_rounds": settings.bcrypt_rounds}


async def test_startup_prepares_missing_report_hash(tmp_path, settings):
    auth._dummy_hash.cache_clear()
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    app = create_app(settings, database=database)

    async with app.router.lifespan_context(app):
        assert auth._dummy_hash.cache_info().currsize == 1
