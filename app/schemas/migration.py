from __future__ import annotations
from pydantic import BaseModel


class MigrationStatus(BaseModel):
    applied: list[int]
    pending: list[int]
    current_version: int | None = None
