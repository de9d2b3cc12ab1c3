from __future__ import annotations
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field


class ReportCreate(BaseModel):
    campus: str
    building: str
    location: str
    problem_types: list[str]
    custom_problem: str | None = None
    description: str
    password: str


class ReportUpdate(BaseModel):
    campus: str | None = None
    building: str | None = None
    location: str | None = None
    problem_types: list[str] | None = None
    custom_problem: str | None = None
    description: str | None = None
    password: str


class ReportRead(BaseModel):
    id: str
    campus: str
    building: str
    location: str
    problem_types: list[str]
    custom_problem: str | None = None
    description: str
    empathy_count: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReportQuery(BaseModel):
    sort: Literal["latest", "empathy"] = "latest"
    campus: str | None = None  # "all" or None = every campus
    building: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)


class ReportList(BaseModel):
    reports: list[ReportRead]
    total: int
    page: int
    limit: int
    total_pages: int
