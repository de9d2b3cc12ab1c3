"""FastAPI dependency providers for the injected database handle and settings."""

from __future__ import annotations

from fastapi import Request

from app.config import Settings
from app.db.engine import Database


def get_database(request: Request) -> Database:
    """The handle built by the app lifespan after migrations completed."""
    return request.app.state.database


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings
