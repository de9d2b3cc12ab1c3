"""FastAPI application entry point.

Startup is a barrier: the schema is migrated to the current version before the
app accepts a request, and a migration failure stops the process from serving.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import Settings, get_settings
from app.db.engine import Database
from app.db.migrator import run_migrations
from app.errors import AppError
from app.services.auth import warm_dummy_hash

logger = logging.getLogger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a core error as ``{"success": false, "error": {...}}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict(include_details=exc.status_code < 500)},
    )


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database.from_settings(settings)
        try:
            applied = await run_migrations(db)
        except Exception:
            await db.dispose()
            raise
        logger.info(f"Database ready ({applied} migration(s) applied at startup)")
        await warm_dummy_hash(settings.bcrypt_rounds)
        app.state.database = db
        app.state.settings = settings
        yield
        await db.dispose()

    app = FastAPI(
        title="Campus WiFi Reports",
        description="Campus WiFi complaint reports with anonymous empathy votes.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(AppError, app_error_handler)
    return app


app = create_app()
